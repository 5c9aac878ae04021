"""Debug output that is printed only when verbose mode is on."""

from __future__ import annotations

import os
import sys
from typing import IO, Any

from .pcstime import beijing_time_option

ENV_VERBOSE = "PCSKIT_VERBOSE"

is_verbose: bool = os.environ.get(ENV_VERBOSE) == "1"
outputs: list[IO[str]] = [sys.stderr]


def set_verbose(enabled: bool) -> None:
    """Turn verbose output on or off."""
    global is_verbose
    is_verbose = bool(enabled)


def time_prefix() -> str:
    """Return the bracketed timestamp put in front of debug lines."""
    return "[" + beijing_time_option("Refer") + "]"


def verbosef(fmt: str, *args: Any) -> int:
    """Write a %-formatted debug message to every output; return characters written."""
    if not is_verbose:
        return 0
    text = time_prefix() + " " + (fmt % args)
    written = 0
    for out in outputs:
        written += out.write(text)
    return written


def verboseln(*args: Any) -> int:
    """Write the arguments, space separated, as one debug line."""
    if not is_verbose:
        return 0
    text = time_prefix() + " " + " ".join(str(a) for a in args) + "\n"
    written = 0
    for out in outputs:
        written += out.write(text)
    return written


class Verbose:
    """Debug printer tagged with a module name."""

    def __init__(self, module: str) -> None:
        self.module = module

    def info(self, message: str) -> None:
        verbosef("DEBUG: %s INFO: %s\n", self.module, message)

    def infof(self, fmt: str, *args: Any) -> None:
        verbosef("DEBUG: %s INFO: %s", self.module, fmt % args)

    def warn(self, message: str) -> None:
        verbosef("DEBUG: %s WARN: %s\n", self.module, message)

    def warnf(self, fmt: str, *args: Any) -> None:
        verbosef("DEBUG: %s WARN: %s", self.module, fmt % args)


def print_reader(reader: IO) -> None:
    """Print everything that can be read from ``reader``."""
    data = reader.read()
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    print(data)


def print_args(stream: IO[str], *args: str) -> None:
    """Write each argument with its index on a single line."""
    for index, arg in enumerate(args):
        stream.write(f"args[{index}] = `{arg}`, ")
    stream.write("\n")