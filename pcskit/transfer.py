"""Byte ranges, range generators and download progress state."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable, Optional

from .converter import KB
from .speeds import RateLimit, Speeds

DEFAULT_BLOCK_SIZE = 256 * KB


def _div_trunc(a: int, b: int) -> int:
    """Integer division rounding toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


class RangeGenMode(IntEnum):
    """How a :class:`RangeListGen` splits a file into ranges."""

    DEFAULT = 0
    BLOCK_SIZE = 1


class UnknownRangeGenModeError(ValueError):
    """Raised for a range generation mode that is not known."""

    def __init__(self, message: str = "Unknown RangeGenMode") -> None:
        super().__init__(message)


@dataclass
class Range:
    """A half-open byte range [begin, end)."""

    begin: int = 0
    end: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def length(self) -> int:
        """Bytes left in the range."""
        return self.end - self.begin

    def add_begin(self, i: int) -> int:
        """Move the start forward by ``i`` and return the new start."""
        with self._lock:
            self.begin += i
            return self.begin

    def show_details(self) -> str:
        """Render the range as '{begin-end}'."""
        return f"{{{self.begin}-{self.end}}}"


def ranges_length(ranges: Optional[Iterable[Optional[Range]]]) -> int:
    """Sum of the remaining lengths of all ranges, skipping missing ones."""
    if ranges is None:
        return 0
    return sum(r.length() for r in ranges if r is not None)


class RangeListGen:
    """Hands out consecutive ranges of a file of ``total`` bytes."""

    def __init__(
        self,
        total: int,
        begin: int,
        mode: RangeGenMode,
        *,
        block_size: int = 0,
        parallel: int = 0,
        count: int = 0,
    ) -> None:
        self.total = total
        self.begin = begin
        self.block_size = block_size
        self.parallel = parallel
        self.count = count
        self.range_gen_mode = mode
        self._lock = threading.RLock()

    def range_count(self) -> int:
        """Number of ranges still expected to be generated."""
        if self.range_gen_mode == RangeGenMode.DEFAULT:
            return self.parallel - self.count
        if self.range_gen_mode == RangeGenMode.BLOCK_SIZE:
            count = _div_trunc(self.total - self.begin, self.block_size)
            if self.total % self.block_size != 0:
                count += 1
            return count
        return 0

    def load_begin(self) -> int:
        """Start of the next range to be generated."""
        with self._lock:
            return self.begin

    def load_block_size(self) -> int:
        """Block size in use, working it out from ``parallel`` in default mode."""
        with self._lock:
            if self.range_gen_mode == RangeGenMode.DEFAULT:
                if self.block_size <= 0:
                    self.block_size = _div_trunc(self.total - self.begin, self.parallel)
                    if self.block_size < 256 * KB:
                        self.block_size = 256 * KB
                return self.block_size
            if self.range_gen_mode == RangeGenMode.BLOCK_SIZE:
                return self.block_size
            return 0

    def is_done(self) -> bool:
        """True once every byte has been handed out."""
        return self.begin >= self.total

    def gen_range(self) -> tuple[int, Optional[Range]]:
        """Return (index, range) of the next range, or (count, None) when done."""
        with self._lock:
            if self.parallel < 1:
                self.parallel = 1
            if self.range_gen_mode == RangeGenMode.DEFAULT:
                self.load_block_size()
                if self.is_done():
                    return self.count, None
                self.count += 1
                if self.count >= self.parallel:
                    end = self.total
                else:
                    end = self.begin + self.block_size
            elif self.range_gen_mode == RangeGenMode.BLOCK_SIZE:
                if self.block_size <= 0:
                    self.block_size = DEFAULT_BLOCK_SIZE
                if self.is_done():
                    return self.count, None
                self.count += 1
                end = self.begin + self.block_size
            else:
                return 0, None

            end = min(end, self.total)
            r = Range(self.begin, end)
            self.begin = end
            return self.count - 1, r


def new_range_list_gen_default(total_size: int, begin: int, count: int, parallel: int) -> RangeListGen:
    """Generator that splits the file evenly between ``parallel`` ranges."""
    return RangeListGen(total_size, begin, RangeGenMode.DEFAULT, parallel=parallel, count=count)


def new_range_list_gen_block_size(total_size: int, begin: int, block_size: int) -> RangeListGen:
    """Generator that splits the file into blocks of ``block_size`` bytes."""
    return RangeListGen(total_size, begin, RangeGenMode.BLOCK_SIZE, block_size=block_size)


class DownloadStatus:
    """Progress and speed statistics of one download."""

    def __init__(self, total_size: int = 0, downloaded: int = 0, gen: Optional[RangeListGen] = None) -> None:
        self.total_size = total_size
        self.downloaded = downloaded
        self.gen = gen
        self.rate_limit: Optional[RateLimit] = None
        self._max_speeds = 0
        self._tmp_speeds = 0
        self._speeds_stat = Speeds()
        self._start_time = time.monotonic()
        self._lock = threading.Lock()

    def add_downloaded(self, d: int) -> None:
        """Count ``d`` more downloaded bytes."""
        with self._lock:
            self.downloaded += d

    def add_total_size(self, size: int) -> None:
        """Grow the total size by ``size``."""
        with self._lock:
            self.total_size += size

    def add_speeds_downloaded(self, d: int) -> None:
        """Count ``d`` bytes for the speed statistics, waiting on the rate limit."""
        if self.rate_limit is not None:
            self.rate_limit.add(d)
        self._speeds_stat.add(d)

    def update_max_speeds(self, speeds: int) -> None:
        """Raise the recorded maximum speed to ``speeds`` if it is higher."""
        with self._lock:
            if speeds > self._max_speeds:
                self._max_speeds = speeds

    def clear_max_speeds(self) -> None:
        """Forget the recorded maximum speed."""
        with self._lock:
            self._max_speeds = 0

    @property
    def max_speeds(self) -> int:
        return self._max_speeds

    @property
    def speeds_per_second(self) -> int:
        """Speed computed by the last :meth:`update_speeds`."""
        return self._tmp_speeds

    def update_speeds(self) -> None:
        """Refresh the cached speed from the statistics."""
        self._tmp_speeds = self._speeds_stat.get_speeds()

    def time_elapsed(self) -> float:
        """Seconds since the download started."""
        return time.monotonic() - self._start_time

    def time_left(self) -> int:
        """Estimated whole seconds left; -1 when unknown."""
        speeds = self._tmp_speeds
        if speeds <= 0:
            return -1
        return _div_trunc(self.total_size - self.downloaded, speeds)


@dataclass
class DownloadInstanceInfo:
    """Download state and worker ranges, as saved for resuming."""

    download_status: Optional[DownloadStatus] = None
    ranges: Optional[list[Range]] = None


@dataclass
class DownloadInstanceInfoExport:
    """Serialisable form of :class:`DownloadInstanceInfo`."""

    range_gen_mode: RangeGenMode = RangeGenMode.DEFAULT
    total_size: int = 0
    gen_begin: int = 0
    block_size: int = 0
    ranges: list[Range] = field(default_factory=list)

    def get_instance_info(self) -> DownloadInstanceInfo:
        """Rebuild the download state from the saved values."""
        info = DownloadInstanceInfo(ranges=self.ranges)
        if self.range_gen_mode == RangeGenMode.BLOCK_SIZE:
            downloaded = self.gen_begin - ranges_length(self.ranges)
            gen = new_range_list_gen_block_size(self.total_size, self.gen_begin, self.block_size)
        else:
            downloaded = self.total_size - ranges_length(self.ranges)
            n = len(self.ranges)
            gen = new_range_list_gen_default(self.total_size, self.total_size, n, n)
        info.download_status = DownloadStatus(total_size=self.total_size, downloaded=downloaded, gen=gen)
        return info

    def set_instance_info(self, info: Optional[DownloadInstanceInfo]) -> None:
        """Take the values to save from ``info``."""
        if info is None:
            return
        status = info.download_status
        if status is not None:
            self.total_size = status.total_size
            if status.gen is not None:
                self.gen_begin = status.gen.load_begin()
                self.block_size = status.gen.load_block_size()
                self.range_gen_mode = status.gen.range_gen_mode
            else:
                self.range_gen_mode = RangeGenMode.DEFAULT
        self.ranges = list(info.ranges) if info.ranges is not None else []

    def to_dict(self) -> dict[str, Any]:
        """Plain dictionary suitable for JSON."""
        return {
            "range_gen_mode": int(self.range_gen_mode),
            "total_size": self.total_size,
            "gen_begin": self.gen_begin,
            "block_size": self.block_size,
            "ranges": [{"begin": r.begin, "end": r.end} for r in self.ranges if r is not None],
        }


def instance_export_from_dict(data: dict[str, Any]) -> DownloadInstanceInfoExport:
    """Inverse of :meth:`DownloadInstanceInfoExport.to_dict`."""
    try:
        mode = RangeGenMode(int(data.get("range_gen_mode", 0)))
    except ValueError as exc:
        raise UnknownRangeGenModeError() from exc
    return DownloadInstanceInfoExport(
        range_gen_mode=mode,
        total_size=int(data.get("total_size", 0)),
        gen_begin=int(data.get("gen_begin", 0)),
        block_size=int(data.get("block_size", 0)),
        ranges=[Range(int(r.get("begin", 0)), int(r.get("end", 0))) for r in data.get("ranges") or []],
    )