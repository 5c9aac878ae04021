"""Download configuration, first-response info and small download helpers."""

from __future__ import annotations

import random
import re
import threading
from dataclasses import dataclass, replace
from email.message import Message
from email.utils import collapse_rfc2231_value
from typing import IO, Any, Optional
from urllib.parse import unquote_plus

from .instancestate import InstanceStateStorageFormat
from .requester import HTTPClient
from .transfer import RangeGenMode
from .verbose import verbosef

CACHE_SIZE = 8192
PARALLEL_SIZE = 5
MIN_PARALLEL_SIZE = 256 * 1024

CONTENT_RANGE_RE = re.compile(r".*? \d*?-\d*?/(\d*?)", re.ASCII)
_BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass
class Config:
    """Download settings; the defaults are the recommended ones."""

    mode: RangeGenMode = RangeGenMode.DEFAULT
    max_parallel: int = PARALLEL_SIZE
    cache_size: int = CACHE_SIZE
    block_size: int = 0
    max_rate: int = 0
    instance_state_storage_format: InstanceStateStorageFormat = InstanceStateStorageFormat.JSON
    instance_state_path: str = ""
    is_test: bool = False
    try_http: bool = False

    def fix(self) -> None:
        """Raise values that are too small to their minimum."""
        if self.cache_size < 1024:
            self.cache_size = 1024
        if self.max_parallel < 1:
            self.max_parallel = 1

    def copy(self) -> "Config":
        """Return an independent copy."""
        return replace(self)


@dataclass
class DownloadFirstInfo:
    """What the first response told about the file."""

    content_length: int = 0
    content_md5: str = ""
    content_crc32: str = ""
    accept_ranges: str = ""
    referer: str = ""

    def compare(self, other: Optional["DownloadFirstInfo"]) -> bool:
        """True when length, Accept-Ranges and Referer all match."""
        if other is None:
            return False
        return (
            self.content_length == other.content_length
            and self.accept_ranges == other.accept_ranges
            and self.referer == other.referer
        )

    def to_map(self) -> dict[str, str]:
        """The header values a load-balanced server must repeat."""
        return {
            "Content-MD5": self.content_md5,
            "x-bs-meta-crc32": self.content_crc32,
            "Accept-Ranges": self.accept_ranges,
            "Referer": self.referer,
        }


def _response_content_length(resp: Any) -> int:
    value = resp.headers.get("Content-Length")
    try:
        return int(value)
    except (TypeError, ValueError):
        return -1


def new_download_first_info_by_resp(content_length: int, resp: Any) -> DownloadFirstInfo:
    """Build first info from a response; the length is kept only when it differs from the response's."""
    info = DownloadFirstInfo()
    if resp is None:
        info.content_length = content_length
        return info
    if content_length != _response_content_length(resp):
        info.content_length = content_length
    info.accept_ranges = resp.headers.get("Accept-Ranges", "") or ""
    info.referer = resp.headers.get("Referer", "") or ""
    return info


def random_number(low: int, high: int) -> int:
    """Random integer in [low, high); the bounds may be given in either order."""
    if low > high:
        low, high = high, low
    return random.randrange(low, high)


def _path_base(p: str) -> str:
    if p == "":
        return "."
    p = p.rstrip("/")
    if p == "":
        return "/"
    return p.rsplit("/", 1)[-1]


def _parse_disposition(value: str) -> Optional[dict[str, str]]:
    media, _, _ = value.partition(";")
    if not media.strip():
        return None
    msg = Message()
    msg["Content-Disposition"] = value
    params = {}
    for key, val in (msg.get_params(header="content-disposition") or [])[1:]:
        params[key.lower()] = collapse_rfc2231_value(val)
    return params


def _query_unescape(s: str) -> str:
    bad = _BAD_ESCAPE_RE.search(s)
    if bad is not None:
        raise ValueError(f"invalid URL escape {s[bad.start():bad.start() + 3]!r}")
    return unquote_plus(s)


def get_file_name(uri: str, client: Optional[HTTPClient] = None) -> str:
    """File name from the Content-Disposition of a HEAD request, else the last path element."""
    if client is None:
        client = HTTPClient()
    with client.req("HEAD", uri, None, None) as resp:
        disposition = resp.headers.get("Content-Disposition", "") or ""
    params = _parse_disposition(disposition)
    if params is None:
        verbosef("DEBUG: GetFileName ParseMediaType error: %s\n", "no media type")
        return _path_base(uri)
    filename = _query_unescape(params.get("filename", ""))
    return filename or _path_base(uri)


def parse_content_range(content_range: str) -> int:
    """Total length from a Content-Range header; -1 when it cannot be found."""
    match = CONTENT_RANGE_RE.fullmatch(content_range)
    if match is None:
        return -1
    try:
        return int(match.group(1))
    except ValueError:
        return -1


class _FileWriterAt:
    """A file that accepts writes at arbitrary offsets from several threads."""

    def __init__(self, f: IO[bytes]) -> None:
        self.file = f
        self._lock = threading.Lock()

    def write_at(self, data: bytes, offset: int) -> int:
        with self._lock:
            self.file.seek(offset)
            return self.file.write(data)

    def fileno(self) -> int:
        return self.file.fileno()

    def close(self) -> None:
        self.file.close()

    def __enter__(self) -> "_FileWriterAt":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def open_downloader_writer(name: str, mode: str = "w+b") -> _FileWriterAt:
    """Open ``name`` as a positional writer for downloaded data."""
    return _FileWriterAt(open(name, mode))