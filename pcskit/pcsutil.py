"""Assorted helpers: paths, executables, directory walking, addresses."""

from __future__ import annotations

import gzip
import os
import re
import socket
import stat
import sys
import threading
from typing import IO, Callable, Iterator, Optional

import psutil

_CHINA_PHONE_RE = re.compile(r"(\+86)?1[3-9][0-9]\d{8}", re.ASCII)


def trim_path_prefix(path: str, prefix_path: str) -> str:
    """Strip ``prefix_path`` from the front of ``path``; '/' strips nothing."""
    if prefix_path == "/":
        return path
    if path.startswith(prefix_path):
        return path[len(prefix_path):]
    return path


def decompress_gzip(stream: IO[bytes]) -> bytes:
    """Read and gunzip everything from ``stream``; raises OSError on bad data."""
    with gzip.GzipFile(fileobj=stream, mode="rb") as gz:
        return gz.read()


def trigger(f: Optional[Callable[[], object]]) -> Optional[threading.Thread]:
    """Run ``f`` in a background thread; returns the thread, or None if ``f`` is None."""
    if f is None:
        return None
    thread = threading.Thread(target=f, daemon=True)
    thread.start()
    return thread


def trigger_on_sync(f: Optional[Callable[[], object]]) -> None:
    """Call ``f`` now, if given."""
    if f is None:
        return
    f()


def is_pipe_input() -> bool:
    """True when standard input is a named pipe."""
    try:
        mode = os.fstat(sys.stdin.fileno()).st_mode
    except (OSError, ValueError, AttributeError):
        return False
    return stat.S_ISFIFO(mode)


def executable() -> str:
    """Real path of the running program, symbolic links resolved."""
    argv0 = sys.argv[0] if sys.argv and sys.argv[0] else ""
    path = os.path.abspath(argv0) if argv0 else sys.executable
    try:
        return os.path.realpath(path)
    except OSError:
        return path


def executable_path() -> str:
    """Directory of the running program."""
    return os.path.dirname(executable())


def executable_path_join(sub_path: str) -> str:
    """``sub_path`` inside the program's directory."""
    return os.path.join(executable_path(), sub_path)


def _walk(path: str) -> Iterator[str]:
    if os.path.isdir(path):
        for name in sorted(os.listdir(path)):
            yield from _walk(os.path.join(path, name))
    elif os.path.isfile(path) and os.path.getsize(path) > 0:
        yield path


def walk_dir(dir_path: str, suffix: str) -> list[str]:
    """All non-empty files below ``dir_path`` whose name ends with ``suffix``
    (case-insensitive), in lexical order; symbolic links are followed."""
    if not os.path.exists(dir_path):
        raise FileNotFoundError(dir_path)
    suffix = suffix.upper()
    return [
        os.path.normpath(p)
        for p in _walk(dir_path)
        if os.path.basename(p).upper().endswith(suffix)
    ]


def convert_to_unix_path_separator(p: str) -> str:
    """Replace backslashes with forward slashes."""
    return p.replace("\\", "/")


def ch_path_legal(p: str) -> bool:
    """False when ``p`` contains a character not allowed in a path."""
    illegal = "<>|'\"*?,\\" if os.name == "nt" else "<>|:'\"*?,\\"
    return not any(ch in illegal for ch in p)


def list_addresses() -> list[str]:
    """IP addresses of all local network interfaces."""
    addresses = []
    for addrs in psutil.net_if_addrs().values():
        for addr in addrs:
            if addr.family in (socket.AF_INET, socket.AF_INET6):
                addresses.append(addr.address.split("%", 1)[0])
    return addresses


def _split_host_port(address: str) -> Optional[tuple[str, str]]:
    """Split 'host:port' or '[host]:port'; None when malformed."""
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            return None
        rest = address[end + 1:]
        if not rest.startswith(":"):
            return None
        host, port = address[1:end], rest[1:]
        if ":" in port:
            return None
    else:
        i = address.rfind(":")
        if i < 0:
            return None
        host, port = address[:i], address[i + 1:]
        if ":" in host:
            return None
    if any(ch in host or ch in port for ch in "[]"):
        return None
    return host, port


def parse_host(address: str) -> str:
    """Host part of ``address``; the whole address when it has no port."""
    parts = _split_host_port(address)
    return address if parts is None else parts[0]


def is_china_phone(s: str) -> bool:
    """True when ``s`` looks like a mainland China mobile number."""
    return _CHINA_PHONE_RE.fullmatch(s) is not None