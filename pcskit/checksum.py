"""Local file digests: size, MD5, MD5 of a leading slice and CRC32."""

from __future__ import annotations

import hashlib
import os
import zlib
from dataclasses import dataclass
from enum import IntFlag
from typing import IO, Any, Iterable, Optional, Protocol

from .converter import KB

DEFAULT_BUF_SIZE = 256 * KB
SLICE_MD5_SIZE = 256 * KB


class ChecksumFlag(IntFlag):
    """Which digests :meth:`LocalFileChecksum.sum` computes."""

    MD5 = 1
    SLICE_MD5 = 2
    CRC32 = 4


class FileIsNoneError(RuntimeError):
    """Raised when a file operation needs an open file and there is none."""

    def __init__(self, message: str = "file is not open") -> None:
        super().__init__(message)


@dataclass
class LocalFileMeta:
    """Size, digests and modification time of a local file."""

    path: str
    length: int = 0
    slice_md5: bytes = b""
    md5: bytes = b""
    crc32: int = 0
    mod_time: int = 0

    def equal_length_md5(self, other: "LocalFileMeta") -> bool:
        """True when both have the same length and the same MD5."""
        return self.length == other.length and self.md5 == other.md5

    def complete_abs_path(self) -> None:
        """Turn a relative path into an absolute one."""
        if not os.path.isabs(self.path):
            self.path = os.path.abspath(self.path)


class ChecksumWriter(Protocol):
    def write(self, data: bytes) -> int: ...

    def sum(self) -> Any: ...


class HashChecksumWriter:
    """Feeds a hashlib object; its sum is the digest bytes."""

    def __init__(self, h: Any = None) -> None:
        self._h = h if h is not None else hashlib.md5()

    def write(self, data: bytes) -> int:
        self._h.update(data)
        return len(data)

    def sum(self) -> bytes:
        return self._h.digest()


class Crc32ChecksumWriter:
    """Running IEEE CRC32; its sum is an unsigned 32-bit integer."""

    def __init__(self) -> None:
        self._crc = 0

    def write(self, data: bytes) -> int:
        self._crc = zlib.crc32(data, self._crc)
        return len(data)

    def sum(self) -> int:
        return self._crc


class ChecksumWriteUnit:
    """Feeds at most ``end`` bytes to a writer, taking a slice sum after ``slice_end`` bytes."""

    def __init__(
        self,
        writer: ChecksumWriter,
        end: int,
        slice_end: int = 0,
        only_slice_sum: bool = False,
    ) -> None:
        self.writer = writer
        self.end = end
        self.slice_end = slice_end
        self.only_slice_sum = only_slice_sum
        self.slice_sum: Any = None
        self.sum: Any = None
        self._ptr = 0

    def _handle_end(self) -> bool:
        if self._ptr >= self.end:
            if not self.only_slice_sum:
                self.sum = self.writer.sum()
            return True
        return False

    def _write(self, data: bytes) -> bool:
        if self.end <= 0:
            return True
        if self._handle_end():
            return True
        left = self.end - self._ptr
        self._ptr += self.writer.write(data[:left])
        if left < len(data):
            return self._handle_end()
        return False

    def write(self, data: bytes) -> bool:
        """Feed ``data``; return True once this unit needs no more data."""
        if self.slice_end <= 0:
            return self._write(data)

        if self.slice_end > self.end:
            self.slice_end = self.end

        slice_left = self.slice_end - self._ptr
        if slice_left <= 0:
            if self.only_slice_sum:
                return True
            return self._write(data)

        if slice_left <= len(data):
            if self._write(data[:slice_left]):
                return True
            self.slice_sum = self.writer.sum()
            return self._write(data[slice_left:])
        return self._write(data)


class LocalFileChecksum:
    """Computes digests of a local file in one pass."""

    def __init__(
        self,
        local_path: str,
        slice_size: int = SLICE_MD5_SIZE,
        buf_size: int = DEFAULT_BUF_SIZE,
    ) -> None:
        self.meta = LocalFileMeta(path=local_path)
        self.slice_size = slice_size
        self.buf_size = buf_size
        self._file: Optional[IO[bytes]] = None

    @property
    def file(self) -> Optional[IO[bytes]]:
        """The open file, if any."""
        return self._file

    def open_path(self) -> None:
        """Open the file and record its length and modification time."""
        if self._file is not None:
            self._file.close()
            self._file = None
        self._file = open(self.meta.path, "rb")
        st = os.fstat(self._file.fileno())
        self.meta.length = st.st_size
        self.meta.mod_time = int(st.st_mtime)

    def close(self) -> None:
        """Close the file; raises FileIsNoneError when none is open."""
        if self._file is None:
            raise FileIsNoneError()
        f, self._file = self._file, None
        f.close()

    def __enter__(self) -> "LocalFileChecksum":
        if self._file is None:
            self.open_path()
        return self

    def __exit__(self, *exc: object) -> None:
        if self._file is not None:
            self.close()

    def _fix(self) -> None:
        if self.slice_size <= 0:
            self.slice_size = DEFAULT_BUF_SIZE
        if self.buf_size < DEFAULT_BUF_SIZE:
            self.buf_size = DEFAULT_BUF_SIZE

    def _repeat_read(self, units: Iterable[ChecksumWriteUnit]) -> None:
        if self._file is None:
            raise FileIsNoneError()
        units = list(units)
        try:
            while True:
                chunk = self._file.read(self.buf_size)
                all_stopped = all([unit.write(chunk) for unit in units])
                if all_stopped or not chunk:
                    break
        finally:
            self._file.seek(0)

    def sum(self, flag: int) -> None:
        """Compute the digests selected by ``flag`` into :attr:`meta`."""
        self._fix()
        flag = int(flag)
        units = []
        md5_unit = crc_unit = None
        if flag & (ChecksumFlag.MD5 | ChecksumFlag.SLICE_MD5):
            md5_unit = ChecksumWriteUnit(
                HashChecksumWriter(hashlib.md5()),
                end=self.meta.length,
                slice_end=self.slice_size if flag & ChecksumFlag.SLICE_MD5 else 0,
                only_slice_sum=not flag & ChecksumFlag.MD5,
            )
            units.append(md5_unit)
        if flag & ChecksumFlag.CRC32:
            crc_unit = ChecksumWriteUnit(Crc32ChecksumWriter(), end=self.meta.length)
            units.append(crc_unit)

        self._repeat_read(units)

        if md5_unit is not None:
            if md5_unit.slice_sum is not None:
                self.meta.slice_md5 = md5_unit.slice_sum
            if md5_unit.sum is not None:
                self.meta.md5 = md5_unit.sum
        if crc_unit is not None and crc_unit.sum is not None:
            self.meta.crc32 = crc_unit.sum


def get_file_sum(local_path: str, flag: int, slice_size: int = SLICE_MD5_SIZE) -> LocalFileChecksum:
    """Compute the digests of ``local_path`` selected by ``flag``; the file is closed afterwards."""
    lfc = LocalFileChecksum(local_path, slice_size)
    try:
        lfc.open_path()
        lfc.sum(flag)
        return lfc
    finally:
        if lfc.file is not None:
            lfc.close()