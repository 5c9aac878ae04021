"""Backslash escaping of selected characters."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

RuneFunc = Callable[[str], bool]


def escape_by_rune_func(s: str, rune_func: Optional[RuneFunc]) -> str:
    """Put a backslash before every character for which ``rune_func`` is true,
    unless it is already preceded by one."""
    if rune_func is None:
        return s
    out = []
    previous = ""
    for ch in s:
        if rune_func(ch) and previous != "\\":
            out.append("\\")
        out.append(ch)
        previous = ch
    return "".join(out)


def escape(s: str, escape_runes: Iterable[str]) -> str:
    """Escape each character of ``s`` that is in ``escape_runes``."""
    targets = set(escape_runes)
    return escape_by_rune_func(s, lambda ch: ch in targets)


def escape_strings(ss: list[str], escape_runes: Iterable[str]) -> None:
    """Escape every string of ``ss`` in place."""
    targets = set(escape_runes)
    ss[:] = [escape(s, targets) for s in ss]


def escape_strings_by_rune_func(ss: list[str], rune_func: Optional[RuneFunc]) -> None:
    """Escape every string of ``ss`` in place using ``rune_func``."""
    ss[:] = [escape_by_rune_func(s, rune_func) for s in ss]