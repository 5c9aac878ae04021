"""Readers and writers that know their remaining length."""

from __future__ import annotations

import os
import threading
from typing import IO, Any, Iterable, Optional


def _reader_length(reader: Any) -> int:
    """Remaining length of ``reader``: its ``length()`` or what is left of a seekable stream."""
    if hasattr(reader, "length"):
        return reader.length()
    pos = reader.tell()
    end = reader.seek(0, os.SEEK_END)
    reader.seek(pos)
    return end - pos


class Buffer:
    """A fixed-size byte buffer with positional reads and writes."""

    def __init__(self, buf: bytes | bytearray | int) -> None:
        self.buf = bytearray(buf)

    def read_at(self, size: int, offset: int) -> bytes:
        """Return up to ``size`` bytes starting at ``offset``."""
        return bytes(self.buf[offset:offset + size])

    def write_at(self, data: bytes, offset: int) -> int:
        """Copy ``data`` in at ``offset`` without growing the buffer; return bytes copied."""
        n = max(0, min(len(data), len(self.buf) - offset))
        self.buf[offset:offset + n] = data[:n]
        return n

    def __bytes__(self) -> bytes:
        return bytes(self.buf)

    def __len__(self) -> int:
        return len(self.buf)


class FileReaderLen64:
    """Wraps an open binary file, tracking how much was read sequentially."""

    def __init__(self, f: IO[bytes]) -> None:
        self._f = f
        self._readed = 0
        self._lock = threading.Lock()

    def read(self, size: int = -1) -> bytes:
        """Read from the current position and count the bytes."""
        with self._lock:
            data = self._f.read(size)
            self._readed += len(data)
            return data

    def read_at(self, size: int, offset: int) -> bytes:
        """Read ``size`` bytes at ``offset`` without moving the position or counting."""
        with self._lock:
            pos = self._f.tell()
            try:
                self._f.seek(offset)
                return self._f.read(size)
            finally:
                self._f.seek(pos)

    def length(self) -> int:
        """File size minus what was read sequentially; 0 if the size is unavailable."""
        try:
            size = os.fstat(self._f.fileno()).st_size
        except (OSError, ValueError):
            return 0
        return size - self._readed


class CryptoRandReaderLen64:
    """Produces cryptographically random bytes, nominally ``size`` of them."""

    def __init__(self, size: int) -> None:
        self._size = size
        self._readed = 0
        self._lock = threading.Lock()

    def read(self, size: int) -> bytes:
        """Return ``size`` random bytes and count them."""
        data = self.read_at(size, 0)
        with self._lock:
            self._readed += len(data)
        return data

    def read_at(self, size: int, offset: int) -> bytes:
        """Return ``size`` random bytes; the offset has no meaning here."""
        return os.urandom(size)

    def length(self) -> int:
        """Nominal size minus what was read."""
        return self._size - self._readed


class MultiReaderLen:
    """Reads several readers one after another; its length is the sum of theirs."""

    def __init__(self, readers: Iterable[Optional[Any]]) -> None:
        self._readers = [r for r in readers if r is not None]
        self._current = 0

    def read(self, size: int = -1) -> bytes:
        """Read from the current reader; ``size`` < 0 reads everything."""
        if size is None or size < 0:
            chunks = []
            while self._current < len(self._readers):
                chunks.append(self._readers[self._current].read())
                self._current += 1
            return b"".join(chunks)
        if size == 0:
            return b""
        while self._current < len(self._readers):
            data = self._readers[self._current].read(size)
            if data:
                return data
            self._current += 1
        return b""

    def length(self) -> int:
        """Total remaining length of all readers."""
        return sum(_reader_length(r) for r in self._readers)


def multi_reader_len(*args: Optional[Any]) -> MultiReaderLen:
    """Chain the given readers; ``None`` entries are skipped."""
    return MultiReaderLen(args)