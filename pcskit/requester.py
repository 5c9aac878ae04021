"""HTTP client with browser-like defaults, proxy selection and form encoding."""

from __future__ import annotations

import warnings
from typing import Any, Mapping, Optional
from urllib.parse import urlencode, urlsplit

import requests

from .pcsutil import _split_host_port

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_13_2) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/63.0.3239.132 Safari/537.36"
)
DEFAULT_TIMEOUT = 30.0

_global_proxy_addr = ""

# Certificate checks are switched off on purpose; silence the per-request warning.
warnings.filterwarnings("ignore", message="Unverified HTTPS request")


class ProxyAddrEmptyError(ValueError):
    """Raised when a proxy address is required but empty."""

    def __init__(self, message: str = "proxy addr is empty") -> None:
        super().__init__(message)


def _join_host_port(host: str, port: str) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def check_proxy_addr(proxy_addr: str) -> str:
    """Turn a proxy address ('host:port' or a URL) into a proxy URL.

    Raises ProxyAddrEmptyError for an empty address and ValueError for one
    that cannot be parsed.
    """
    if not proxy_addr:
        raise ProxyAddrEmptyError()
    parts = _split_host_port(proxy_addr)
    if parts is not None:
        return "http://" + _join_host_port(*parts)
    urlsplit(proxy_addr)
    return proxy_addr


def set_global_proxy(proxy_addr: str) -> None:
    """Set the proxy used by clients that have no proxy of their own."""
    global _global_proxy_addr
    _global_proxy_addr = proxy_addr


def _sprint(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class _SizedReader:
    """Gives a length-aware reader the ``len()`` an HTTP library looks for."""

    def __init__(self, reader: Any, length: int) -> None:
        self._reader = reader
        self._length = length

    def read(self, size: int = -1) -> bytes:
        return self._reader.read(size)

    def __len__(self) -> int:
        return self._length


def _encode_post(post: Any) -> Any:
    if post is None:
        return None
    if isinstance(post, (bytes, bytearray, memoryview)):
        return bytes(post)
    if isinstance(post, str):
        return post.encode()
    if isinstance(post, Mapping):
        pairs = sorted((_sprint(k), _sprint(v)) for k, v in post.items())
        return urlencode(pairs).encode()
    if hasattr(post, "read"):
        if hasattr(post, "length"):
            return _SizedReader(post, post.length())
        return post
    raise TypeError(f"requester.Req: unknown post type: {type(post).__name__}")


class HTTPClient:
    """HTTP client with a cookie jar, a timeout and no certificate checks."""

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, timeout: Optional[float] = DEFAULT_TIMEOUT) -> None:
        self.session = requests.Session()
        self.session.verify = False
        self.user_agent = user_agent
        self.timeout = timeout
        self.keep_alive = True
        self.gzip = True
        self._proxies: Optional[dict[str, str]] = None
        self._proxy_from_env = False

    def set_proxy(self, proxy_addr: str) -> None:
        """Use ``proxy_addr``; an empty or invalid one means the environment's proxy."""
        try:
            url = check_proxy_addr(proxy_addr)
        except ValueError:
            self._proxies = None
            self._proxy_from_env = True
            return
        self._proxies = {"http": url, "https": url}
        self._proxy_from_env = False

    def reset_cookiejar(self) -> None:
        """Forget all cookies."""
        self.session.cookies.clear()

    def _resolve_proxies(self) -> Optional[dict[str, str]]:
        if self._proxies is not None:
            return self._proxies
        if self._proxy_from_env:
            return None
        try:
            url = check_proxy_addr(_global_proxy_addr)
        except ValueError:
            return None
        return {"http": url, "https": url}

    def req(
        self,
        method: str,
        url: str,
        post: Any = None,
        header: Optional[Mapping[str, str]] = None,
    ) -> requests.Response:
        """Send a request and return the streamed response; the caller closes it.

        ``post`` may be bytes, str, a mapping (form-encoded) or a readable
        object; a reader with ``length()`` sets Content-Length and one with
        ``content_type`` sets Content-Type.
        """
        body = _encode_post(post)
        headers = {"User-Agent": self.user_agent}
        content_type = getattr(post, "content_type", None)
        if isinstance(content_type, str) and content_type:
            headers["Content-Type"] = content_type
        if not self.keep_alive:
            headers["Connection"] = "close"
        if not self.gzip:
            headers["Accept-Encoding"] = "identity"
        if header:
            headers.update(header)
        return self.session.request(
            method,
            url,
            data=body,
            headers=headers,
            timeout=self.timeout,
            proxies=self._resolve_proxies(),
            stream=True,
        )

    def fetch(
        self,
        method: str,
        url: str,
        post: Any = None,
        header: Optional[Mapping[str, str]] = None,
    ) -> bytes:
        """Send a request and return the whole response body."""
        with self.req(method, url, post, header) as resp:
            return resp.content


default_client = HTTPClient()


def http_get(url: str) -> bytes:
    """GET ``url`` with the default client and return the body."""
    return default_client.fetch("GET", url)


def req(method: str, url: str, post: Any = None, header: Optional[Mapping[str, str]] = None) -> requests.Response:
    """:meth:`HTTPClient.req` on the default client."""
    return default_client.req(method, url, post, header)


def fetch(method: str, url: str, post: Any = None, header: Optional[Mapping[str, str]] = None) -> bytes:
    """:meth:`HTTPClient.fetch` on the default client."""
    return default_client.fetch(method, url, post, header)


def parse_cookie_str(cookie_str: str) -> list[tuple[str, str]]:
    """Split 'a=1; b=2' into (name, value) pairs, skipping pieces without '='."""
    cookies = []
    for raw in cookie_str.split(";"):
        name, sep, value = raw.partition("=")
        if not sep:
            continue
        cookies.append((name.strip(), value.strip()))
    return cookies