"""Type conversion, display trimming and file size formatting helpers."""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable

from wcwidth import wcwidth

INVALID_CHARS = '\\/:*?"<>|'

B = 1
KB = 1 << 10
MB = 1 << 20
GB = 1 << 30
TB = 1 << 40
PB = 1 << 50

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_INT_RE = re.compile(r"[+-]?[0-9]+")
_NUMBER_PREFIX_RE = re.compile(r"[.0-9]+")
_OTHER_CATEGORIES = {"Cc", "Cf", "Co", "Cs"}

_UNIT_FACTORS = {
    "": B,
    "B": B,
    "K": KB,
    "KB": KB,
    "M": MB,
    "MB": MB,
    "G": GB,
    "GB": GB,
    "T": TB,
    "TB": TB,
    "P": PB,
    "PB": PB,
}


def _parse_int(s: str) -> int:
    """Parse a base-10 integer strictly; clamp to int64 and raise on overflow."""
    if not _INT_RE.fullmatch(s):
        raise ValueError(f"invalid syntax: {s!r}")
    value = int(s)
    if value > _INT64_MAX:
        raise OverflowError(_INT64_MAX)
    if value < _INT64_MIN:
        raise OverflowError(_INT64_MIN)
    return value


def int_to_bool(i: int) -> bool:
    """Return True for any non-zero integer."""
    return i != 0


def ints_to_strings(values: Iterable[int]) -> list[str]:
    """Render each integer in base 10."""
    return [str(v) for v in values]


def strings_to_ints(values: Iterable[str]) -> list[int]:
    """Parse each string as an integer, silently dropping the invalid ones."""
    result = []
    for value in values:
        try:
            result.append(_parse_int(value))
        except (ValueError, OverflowError):
            continue
    return result


def must_int(s: str) -> int:
    """Parse ``s`` as an integer; invalid input gives 0, overflow clamps."""
    try:
        return _parse_int(s)
    except OverflowError as exc:
        return exc.args[0]
    except ValueError:
        return 0


def short_display(s: str, num: int) -> str:
    """Shorten ``s`` to a display width of ``num`` columns, marking the cut with '...'."""
    parts = []
    width = 0
    for ch in s:
        if unicodedata.category(ch) in _OTHER_CATEGORIES:
            continue
        width += max(wcwidth(ch), 0)
        if width > num:
            parts.append("...")
            break
        parts.append(ch)
    return "".join(parts)


def trim_path_invalid_chars(fpath: str) -> str:
    """Remove characters that are not allowed in file names."""
    return "".join(ch for ch in fpath if ch not in INVALID_CHARS)


def convert_file_size(size: int, precision: int = 6) -> str:
    """Format a byte count with a binary unit suffix."""
    if size < 0:
        return "0B"
    if size < KB:
        return f"{size}B"
    for limit, unit, name in ((MB, KB, "KB"), (GB, MB, "MB"), (TB, GB, "GB"), (PB, TB, "TB")):
        if size < limit:
            return f"{size / unit:.{precision}f}{name}"
    return f"{size / PB:.{precision}f}PB"


def parse_file_size_str(ss: str) -> int:
    """Parse a size such as '3.86mb' or '1k' into a number of bytes."""
    if ss == "":
        raise ValueError("converter: size is empty")
    if not (ss[0] == "." or "0" <= ss[0] <= "9"):
        raise ValueError("converter: invalid size: " + ss)

    match = _NUMBER_PREFIX_RE.match(ss)
    end = match.end()
    size_str, unit_str = ss[:end], ss[end:]
    try:
        size_float = float(size_str)
    except ValueError:
        size_float = 0.0

    factor = _UNIT_FACTORS.get(unit_str.upper())
    if factor is None:
        raise ValueError("converter: invalid unit " + unit_str)
    return int(size_float * factor)