"""A download worker that fetches one byte range and writes it in place."""

from __future__ import annotations

import threading
from enum import Enum
from typing import Any, Callable, Optional

import requests

from .converter import KB
from .dlcommon import parse_content_range
from .pcsutil import trigger
from .requester import HTTPClient
from .speeds import Speeds
from .transfer import DownloadStatus, Range
from .verbose import verbosef
from .workerstatus import StatusCode, WorkerStatus

DEFAULT_CACHE_SIZE = 64 * KB


class _ReadEnd(Enum):
    EOF = "EOF"
    UNEXPECTED_EOF = "unexpected EOF"
    ERROR = "error"


def _content_length(resp: Any) -> int:
    try:
        return int(resp.headers.get("Content-Length"))
    except (TypeError, ValueError):
        return -1


def _status_line(resp: Any) -> str:
    return f"{resp.status_code} {resp.reason or ''}".rstrip()


class Worker:
    """Downloads the bytes of :attr:`range` and writes them at their offsets.

    A worker whose range is empty (0, 0) downloads the whole body in one
    stream without a Range header.
    """

    def __init__(self, worker_id: int, url: str, writer_at: Any = None) -> None:
        self.id = worker_id
        self.url = url
        self.writer_at = writer_at
        self.referer = ""
        self.accept_ranges = ""
        self.total_size = 0
        self.client: Any = None
        self.first_resp: Any = None
        self.write_lock: Optional[threading.Lock] = None
        self.download_status: Optional[DownloadStatus] = None
        self.cache_size = DEFAULT_CACHE_SIZE
        self.range: Optional[Range] = None
        self.status = WorkerStatus()
        self.err: Optional[BaseException] = None
        self.speeds_stat = Speeds()
        self._exec_lock = threading.Lock()
        self._pause_event = threading.Event()
        self._cancel_event: Optional[threading.Event] = None
        self._reset_event: Optional[threading.Event] = None
        self._close_body: Optional[Callable[[], None]] = None

    def _lazy_init(self) -> None:
        if self.client is None:
            self.client = HTTPClient()
        if self.range is None:
            self.range = Range()
        if self.range.begin == 0 and self.range.end == 0:
            # No range assigned: download the whole body in one stream.
            self.accept_ranges = ""
            self.range.end = -2

    def set_range(self, r: Range) -> None:
        """Take over the bounds of ``r``."""
        if self.range is None:
            self.range = r
            return
        self.range.begin = r.begin
        self.range.end = r.end

    def get_speeds_per_second(self) -> int:
        """Current download speed of this worker."""
        return self.speeds_stat.get_speeds()

    def pause(self) -> None:
        """Ask a running range download to stop after its current chunk."""
        self._lazy_init()
        if not self.accept_ranges:
            verbosef("WARNING: worker unsupport pause")
            return
        if self.status.status_code == StatusCode.PAUSED:
            return
        self._pause_event.set()
        self.status.status_code = StatusCode.PAUSED

    def resume(self) -> None:
        """Continue a paused worker in the background."""
        if self.status.status_code != StatusCode.PAUSED:
            return
        self._pause_event.clear()
        trigger(self.execute)

    def cancel(self) -> None:
        """Stop the running download; raises RuntimeError if it never started."""
        if self._cancel_event is None:
            raise RuntimeError("cancelFunc not set")
        self._cancel_event.set()
        if self._close_body is not None:
            self._close_body()

    def reset(self) -> None:
        """Drop the current connection and start again in the background."""
        if self._reset_event is None:
            verbosef("DEBUG: worker: resetFunc not set")
            return
        self._reset_event.set()
        if self._close_body is not None:
            self._close_body()
        self.clear_status()
        trigger(self.execute)

    def canceled(self) -> bool:
        return self.status.status_code == StatusCode.CANCELED

    def completed(self) -> bool:
        return self.status.status_code in (StatusCode.SUCCESSED, StatusCode.CANCELED)

    def failed(self) -> bool:
        return self.status.status_code in (
            StatusCode.FAILED,
            StatusCode.INTERNAL_ERROR,
            StatusCode.TOO_MANY_CONNECTIONS,
            StatusCode.NET_ERROR,
        )

    def clear_status(self) -> None:
        self.status.status_code = StatusCode.INIT

    def execute(self) -> None:
        """Download the range; the outcome is left in :attr:`status` and :attr:`err`."""
        self._lazy_init()
        with self._exec_lock:
            self.status.status_code = StatusCode.INIT
            single = not self.accept_ranges

            if not single:
                rlen = self.range.length()
                if rlen <= 0:
                    if rlen < 0:
                        verbosef("DEBUG: RangeLen is negative at begin: %s, %d\n", self.range, rlen)
                    self.status.status_code = StatusCode.SUCCESSED
                    return

            cancel_event = threading.Event()
            reset_event = threading.Event()
            self._cancel_event = cancel_event
            self._reset_event = reset_event

            header = {}
            if self.referer:
                header["Referer"] = self.referer
            if self.accept_ranges and self.range.length() >= 0:
                header["Range"] = f"{self.accept_ranges}={self.range.begin}-{self.range.end - 1}"

            self.status.status_code = StatusCode.PENDING

            using_first = self.first_resp is not None
            if using_first:
                resp = self.first_resp
            else:
                try:
                    resp = self.client.req("GET", self.url, None, header)
                except (requests.RequestException, OSError) as exc:
                    self.err = exc
                    self.status.status_code = StatusCode.NET_ERROR
                    return

            self._close_body = resp.close
            try:
                self._download(resp, single, using_first, cancel_event, reset_event)
            finally:
                resp.close()
                self.first_resp = None

    def _check_response(self, resp: Any, single: bool, using_first: bool) -> bool:
        code = resp.status_code
        if code in (200, 206):
            pass
        elif code in (416, 403, 404):
            self.status.status_code = StatusCode.INTERNAL_ERROR
            self.err = RuntimeError(_status_line(resp))
            return False
        elif code == 406:
            self.status.status_code = StatusCode.NET_ERROR
            self.err = RuntimeError(_status_line(resp))
            return False
        elif code in (429, 509):
            self.status.status_code = StatusCode.TOO_MANY_CONNECTIONS
            self.err = RuntimeError(_status_line(resp))
            return False
        else:
            self.status.status_code = StatusCode.NET_ERROR
            self.err = RuntimeError(f"unexpected http status code, {code}, {_status_line(resp)}")
            return False

        if single:
            return True

        content_length = _content_length(resp)
        range_length = self.range.length()
        if content_length != range_length and not using_first:
            self.status.status_code = StatusCode.NET_ERROR
            self.err = RuntimeError(
                f"Content-Length is unexpected: {content_length}, need {range_length}"
            )
            return False
        if self.total_size > 0:
            total = parse_content_range(resp.headers.get("Content-Range", "") or "")
            if total > 0 and total != self.total_size:
                # Treated as an internal error so the whole download stops.
                self.status.status_code = StatusCode.INTERNAL_ERROR
                self.err = RuntimeError(
                    f"Content-Range total length is unexpected: {total}, need {self.total_size}"
                )
                return False
        return True

    def _download(
        self,
        resp: Any,
        single: bool,
        using_first: bool,
        cancel_event: threading.Event,
        reset_event: threading.Event,
    ) -> None:
        if not self._check_response(resp, single, using_first):
            return

        chunks = resp.iter_content(chunk_size=self.cache_size)
        while True:
            if cancel_event.is_set():
                self.status.status_code = StatusCode.CANCELED
                return
            if reset_event.is_set():
                self.status.status_code = StatusCode.RESETED
                return
            if self._pause_event.is_set():
                self._pause_event.clear()
                self.status.status_code = StatusCode.PAUSED
                return

            self.status.status_code = StatusCode.DOWNLOADING

            read_end: Optional[_ReadEnd] = None
            read_exc: Optional[BaseException] = None
            buf = bytearray()
            while len(buf) < self.cache_size and read_end is None and (single or self.range.length() > 0):
                try:
                    chunk = next(chunks)
                except StopIteration:
                    read_end = _ReadEnd.EOF
                    break
                except Exception as exc:  # a closed or broken connection
                    read_end, read_exc = _ReadEnd.ERROR, exc
                    break
                if self.download_status is not None:
                    self.download_status.add_speeds_downloaded(len(chunk))
                self.speeds_stat.add(len(chunk))
                buf += chunk

            if buf and read_end is _ReadEnd.EOF:
                read_end = _ReadEnd.UNEXPECTED_EOF

            if not single:
                range_length = self.range.length()
                if range_length <= 0:
                    self.status.status_code = StatusCode.CANCELED
                    self.err = RuntimeError("worker already complete")
                    return
                if len(buf) > range_length:
                    del buf[range_length:]
                    read_end, read_exc = _ReadEnd.EOF, None

            if self.writer_at is not None:
                self.status.status_code = StatusCode.WAIT_TO_WRITE
                try:
                    if self.write_lock is not None:
                        with self.write_lock:
                            self.writer_at.write_at(bytes(buf), self.range.begin)
                    else:
                        self.writer_at.write_at(bytes(buf), self.range.begin)
                except Exception as exc:
                    self.err = exc
                    self.status.status_code = StatusCode.INTERNAL_ERROR
                    return
                self.status.status_code = StatusCode.DOWNLOADING

            n = len(buf)
            self.range.add_begin(n)
            if self.download_status is not None:
                self.download_status.add_downloaded(n)
                if single:
                    self.download_status.add_total_size(n)

            if read_end is not None:
                rlen = self.range.length()
                if (
                    (single and read_end is _ReadEnd.UNEXPECTED_EOF)
                    or read_end is _ReadEnd.EOF
                    or rlen <= 0
                ):
                    self.status.status_code = StatusCode.SUCCESSED
                    if rlen < 0 and not single:
                        verbosef("DEBUG: RangeLen is negative at end: %s, %d\n", self.range, rlen)
                    return
                if cancel_event.is_set():
                    self.status.status_code = StatusCode.CANCELED
                    return
                if reset_event.is_set():
                    self.status.status_code = StatusCode.RESETED
                    return
                self.status.status_code = StatusCode.FAILED
                self.err = read_exc if read_exc is not None else EOFError(read_end.value)
                return

    def __repr__(self) -> str:
        return f"Worker(id={self.id}, range={self.range}, status={self.status.status_code.name})"


def sort_by_left_desc(workers: list[Worker]) -> None:
    """Sort ``workers`` in place, most bytes left first."""
    workers.sort(key=lambda w: w.range.length() if w.range is not None else 0, reverse=True)