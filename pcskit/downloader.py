"""Multi-connection downloader with load balancing and resumable state."""

from __future__ import annotations

import argparse
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence
from urllib.parse import urlsplit

from .converter import GB, KB, MB, convert_file_size
from .dlcommon import (
    CACHE_SIZE,
    MIN_PARALLEL_SIZE,
    PARALLEL_SIZE,
    Config,
    DownloadFirstInfo,
    open_downloader_writer,
    random_number,
)
from .instancestate import InstanceState
from .monitor import Monitor
from .pcsutil import trigger
from .requester import HTTPClient
from .speeds import RateLimit
from .transfer import (
    DownloadStatus,
    Range,
    RangeGenMode,
    UnknownRangeGenModeError,
    new_range_list_gen_block_size,
    new_range_list_gen_default,
)
from .verbose import verbosef

DEFAULT_ACCEPT_RANGES = "bytes"
BLOCK_SIZE_LIST = (128 * KB, 256 * KB, 1024 * KB, 2 * MB, 4 * MB, 999 * GB)

DURLCheckFunc = Callable[[Any, str], "tuple[int, Any]"]
LoadBalancerCompareFunc = Callable[[dict, Any], bool]
StatusCodeBodyCheckFunc = Callable[[Any], Any]


@dataclass
class LoadBalancerResponse:
    """A server that serves the same file."""

    url: str
    referer: str = ""


class LoadBalancerResponseList:
    """Servers handed out in turn."""

    def __init__(self, responses: Sequence[LoadBalancerResponse]) -> None:
        self._responses = list(responses)
        self._cursor = 0
        self._lock = threading.Lock()

    def sequential_get(self) -> Optional[LoadBalancerResponse]:
        """The next server, wrapping around; None when there are none."""
        with self._lock:
            if not self._responses:
                return None
            if self._cursor >= len(self._responses):
                self._cursor = 0
            lbr = self._responses[self._cursor]
            self._cursor += 1
            return lbr

    def random_get(self) -> LoadBalancerResponse:
        """A server picked at random; raises ValueError when there are none."""
        return self._responses[random_number(0, len(self._responses))]

    def __len__(self) -> int:
        return len(self._responses)


def default_load_balancer_compare_func(info: Optional[dict], sub_resp: Any) -> bool:
    """True when every header in ``info`` has the same value in ``sub_resp``."""
    if info is None or sub_resp is None:
        return False
    return all(value == (sub_resp.headers.get(key, "") or "") for key, value in info.items())


def _response_content_length(resp: Any) -> int:
    try:
        return int(resp.headers.get("Content-Length"))
    except (TypeError, ValueError):
        return -1


def default_durl_check_func(client: Any, durl: str) -> "tuple[int, Any]":
    """GET ``durl`` and return (content length or -1, response); the caller closes it."""
    resp = client.req("GET", durl, None, None)
    return _response_content_length(resp), resp


def _status_line(resp: Any) -> str:
    return f"{resp.status_code} {getattr(resp, 'reason', '') or ''}".rstrip()


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def _request_referer(resp: Any) -> str:
    request = getattr(resp, "request", None)
    if request is None:
        return ""
    return request.headers.get("Referer", "") or ""


class Downloader:
    """Downloads ``durl`` into ``writer`` (an object with ``write_at``) over several connections.

    Event callbacks (``on_execute`` and the like) are plain attributes and run
    in background threads. ``on_download_status`` is called every second with
    the download status and a function that iterates over the workers.
    """

    status_interval = 1.0

    def __init__(self, durl: str, writer: Any = None, config: Optional[Config] = None) -> None:
        self.durl = durl
        self.writer = writer
        self.config = config
        self.client: Any = None
        self.first_info: Optional[DownloadFirstInfo] = None
        self.durl_check_func: Optional[DURLCheckFunc] = None
        self.load_balancer_compare_func: Optional[LoadBalancerCompareFunc] = None
        self.status_code_body_check_func: Optional[StatusCodeBodyCheckFunc] = None
        self.load_balancers: list[str] = []
        self.monitor: Optional[Monitor] = None
        self.instance_state: Optional[InstanceState] = None
        self.execute_time = 0.0

        self.on_execute: Optional[Callable[[], object]] = None
        self.on_success: Optional[Callable[[], object]] = None
        self.on_finish: Optional[Callable[[], object]] = None
        self.on_pause: Optional[Callable[[], object]] = None
        self.on_resume: Optional[Callable[[], object]] = None
        self.on_cancel: Optional[Callable[[], object]] = None
        self.on_download_status: Optional[Callable[[DownloadStatus, Callable], object]] = None

        self._cancel_event: Optional[threading.Event] = None

    def add_load_balance_server(self, *args: str) -> None:
        """Add mirror URLs that serve the same file."""
        self.load_balancers.extend(args)

    def set_file_content_length(self, length: int) -> None:
        """Declare the file length so the URL is not probed first."""
        if self.first_info is None:
            self.first_info = DownloadFirstInfo(content_length=length, accept_ranges=DEFAULT_ACCEPT_RANGES)

    def _lazy_init(self) -> None:
        if self.config is None:
            self.config = Config()
        if self.client is None:
            self.client = HTTPClient(timeout=300.0)
        if self.monitor is None:
            self.monitor = Monitor()
        if self.durl_check_func is None:
            self.durl_check_func = default_durl_check_func
        if self.load_balancer_compare_func is None:
            self.load_balancer_compare_func = default_load_balancer_compare_func

    def select_parallel(
        self,
        single: bool,
        max_parallel: int,
        total_size: int,
        instance_ranges: Optional[Sequence[Any]],
    ) -> int:
        """Number of connections to use."""
        if single:
            parallel = 1
        elif instance_ranges:
            parallel = len(instance_ranges)
        else:
            parallel = max_parallel
            limit = _trunc_div(total_size, MIN_PARALLEL_SIZE)
            if parallel > limit:
                parallel = limit + 1
        return max(parallel, 1)

    def select_block_size_and_init_range_gen(self, single: bool, status: DownloadStatus, parallel: int) -> int:
        """Pick the block size and give ``status`` a range generator; -1 for a single stream."""
        if single:
            return -1
        gen = status.gen
        if gen is None:
            mode = self.config.mode if self.config is not None else RangeGenMode.DEFAULT
            total_size = status.total_size
            if mode == RangeGenMode.DEFAULT:
                gen = new_range_list_gen_default(total_size, 0, 0, parallel)
                block_size = gen.load_block_size()
            elif mode == RangeGenMode.BLOCK_SIZE:
                if total_size < 2 * MB:
                    block_size = BLOCK_SIZE_LIST[1]
                elif total_size < 10 * MB:
                    block_size = BLOCK_SIZE_LIST[2]
                elif total_size < 80 * MB:
                    block_size = BLOCK_SIZE_LIST[3]
                else:
                    block_size = BLOCK_SIZE_LIST[4]
                gen = new_range_list_gen_block_size(total_size, 0, block_size)
            else:
                raise UnknownRangeGenModeError("Unknown RangeGenMode")
        else:
            block_size = gen.load_block_size()
        status.gen = gen
        return block_size

    def select_cache_size(self, conf_cache_size: int, block_size: int) -> int:
        """Cache size, lowered to the block size when it is larger."""
        if block_size > 0 and conf_cache_size > block_size:
            return block_size
        return conf_cache_size

    def _check_load_balancers(self) -> LoadBalancerResponseList:
        responses = [LoadBalancerResponse(url=self.durl)]
        lock = threading.Lock()

        def check(server: str) -> None:
            try:
                length, resp = self.durl_check_func(self.client, server)
            except Exception as exc:
                verbosef("DEBUG: loadBalanser Error: %s\n", exc)
                return
            try:
                if resp.status_code // 100 in (4, 5):
                    err: Any = RuntimeError(_status_line(resp))
                    if self.status_code_body_check_func is not None:
                        try:
                            self.status_code_body_check_func(resp)
                        except Exception as exc:
                            err = exc
                    verbosef("DEBUG: loadBalanser Status Error: %s\n", err)
                    return
                if self.first_info.content_length != length:
                    verbosef("DEBUG: loadBalanser Content-Length not equal to main server\n")
                    return
                if not self.load_balancer_compare_func(self.first_info.to_map(), resp):
                    verbosef("DEBUG: loadBalanser not equal to main server\n")
                    return
                url = getattr(resp, "url", None) or server
                if self.config.try_http:
                    url = urlsplit(url)._replace(scheme="http").geturl()
                balancer = LoadBalancerResponse(url=url, referer=_request_referer(resp))
                with lock:
                    responses.append(balancer)
                verbosef("DEBUG: load balance task: URL: %s, Referer: %s\n", balancer.url, balancer.referer)
            finally:
                resp.close()

        if self.load_balancers:
            prev_timeout = self.client.timeout
            self.client.timeout = 5.0
            try:
                with ThreadPoolExecutor(max_workers=10) as pool:
                    list(pool.map(check, list(self.load_balancers)))
            finally:
                self.client.timeout = prev_timeout
        return LoadBalancerResponseList(responses)

    def _init_instance_state(self) -> None:
        if self.instance_state is not None:
            raise RuntimeError("already initInstanceState")
        save_file = None
        if not self.config.is_test and self.config.instance_state_path:
            fd = os.open(self.config.instance_state_path, os.O_RDWR | os.O_CREAT, 0o777)
            save_file = os.fdopen(fd, "r+b")
        self.instance_state = InstanceState(save_file, self.config.instance_state_storage_format)

    def _remove_instance_state(self) -> None:
        if self.instance_state is not None:
            self.instance_state.close()
        if not self.config.is_test and self.config.instance_state_path:
            try:
                os.remove(self.config.instance_state_path)
            except FileNotFoundError:
                pass

    def _probe(self) -> None:
        content_length, resp = self.durl_check_func(self.client, self.durl)
        try:
            if resp.status_code // 100 in (4, 5):
                if self.status_code_body_check_func is not None:
                    self.status_code_body_check_func(resp)
                raise RuntimeError(_status_line(resp))
            accept_ranges = "" if content_length < 0 else DEFAULT_ACCEPT_RANGES
            self.first_info = DownloadFirstInfo(
                content_length=content_length,
                content_md5=resp.headers.get("Content-MD5", "") or "",
                content_crc32=resp.headers.get("x-bs-meta-crc32", "") or "",
                accept_ranges=accept_ranges,
                referer=resp.headers.get("Referer", "") or "",
            )
            verbosef(
                "DEBUG: download task: URL: %s, Referer: %s\n",
                getattr(resp, "url", self.durl),
                _request_referer(resp),
            )
        finally:
            resp.close()

    def _status_event_loop(self, status: DownloadStatus, finished: threading.Event) -> None:
        while not finished.wait(self.status_interval):
            if self.monitor.completed.is_set():
                return
            self.on_download_status(status, self.monitor.range_worker)

    def _preallocate(self, size: int) -> None:
        fileno = getattr(self.writer, "fileno", None)
        if fileno is None:
            return
        try:
            os.ftruncate(fileno(), size)
        except (OSError, ValueError) as exc:
            verbosef("DEBUG: truncate file error: %s\n", exc)

    def execute(self) -> None:
        """Run the download to the end; raises the error that stopped it."""
        self._lazy_init()
        if self.first_info is None:
            self._probe()
        elif not self.first_info.accept_ranges:
            self.first_info.accept_ranges = DEFAULT_ACCEPT_RANGES

        balancers = self._check_load_balancers()
        single = self.first_info.accept_ranges == ""

        instance = None
        if not single:
            self._init_instance_state()
            instance = self.instance_state.get()
        is_instance = instance is not None

        status = instance.download_status if is_instance else None
        ranges = list(instance.ranges or []) if is_instance else []
        if status is None:
            status = DownloadStatus()
            status.total_size = self.first_info.content_length

        rate_limit = None
        if self.config.max_rate > 0:
            rate_limit = RateLimit(self.config.max_rate)
            status.rate_limit = rate_limit

        try:
            parallel = self.select_parallel(single, self.config.max_parallel, status.total_size, ranges)
            block_size = self.select_block_size_and_init_range_gen(single, status, parallel)
            cache_size = self.select_cache_size(self.config.cache_size, block_size)
            verbosef("DEBUG: download task CREATED: parallel: %d, cache size: %d\n", parallel, cache_size)

            writer = None
            if not self.config.is_test:
                self._preallocate(status.total_size)
                writer = self.writer

            if not ranges:
                if single:
                    ranges = [Range()]
                else:
                    gen = status.gen
                    for _ in range(parallel):
                        _, r = gen.gen_range()
                        if r is None:
                            break
                        ranges.append(r)

            from .worker import Worker

            write_lock = threading.Lock()
            for k, r in enumerate(ranges):
                if r is None:
                    continue
                balancer = balancers.sequential_get()
                if balancer is None:
                    continue
                worker = Worker(k, balancer.url, writer)
                worker.client = self.client
                worker.write_lock = write_lock
                worker.referer = balancer.referer
                worker.total_size = self.first_info.content_length
                worker.accept_ranges = self.first_info.accept_ranges
                worker.cache_size = cache_size
                worker.set_range(r)
                self.monitor.append(worker)

            self.monitor.status = status
            self.monitor.is_reload_worker = parallel > 1
            self._cancel_event = threading.Event()
            self.monitor.instance_state = self.instance_state

            self.execute_time = time.time()
            trigger(self.on_execute)
            finished = threading.Event()
            if self.on_download_status is not None:
                trigger(lambda: self._status_event_loop(status, finished))
            try:
                self.monitor.execute(self._cancel_event)
            finally:
                finished.set()

            err = self.monitor.err
            if err is None:
                trigger(self.on_success)
                if not single:
                    self._remove_instance_state()
            elif self.instance_state is not None:
                self.instance_state.close()
            trigger(self.on_finish)
            if err is not None:
                raise err
        finally:
            if rate_limit is not None:
                rate_limit.stop()

    def pause(self) -> None:
        """Pause all workers."""
        if self.monitor is None:
            return
        trigger(self.on_pause)
        self.monitor.pause()

    def resume(self) -> None:
        """Resume all workers."""
        if self.monitor is None:
            return
        trigger(self.on_resume)
        self.monitor.resume()

    def cancel(self) -> None:
        """Stop the download; :meth:`execute` then returns."""
        if self.monitor is None:
            return
        trigger(self.on_cancel)
        if self._cancel_event is not None:
            self._cancel_event.set()


def _format_elapsed(value: Any) -> str:
    seconds = value.total_seconds() if hasattr(value, "total_seconds") else float(value)
    return f"{seconds:.2f}s"


def do_download(durl: str, save_path: str, cfg: Optional[Config]) -> bool:
    """Download ``durl`` to ``save_path`` with a progress line; False and a message on error."""
    writer = None
    if save_path:
        try:
            writer = open_downloader_writer(save_path, "w+b")
        except OSError as exc:
            print(exc)
            return False

    def show(status: DownloadStatus, _range_worker: Callable) -> None:
        downloaded = status.downloaded
        total = status.total_size
        ts = convert_file_size(downloaded if total <= 0 else total, 2)
        print(
            f"\r ↓ {convert_file_size(downloaded, 2)}/{ts} "
            f"{convert_file_size(status.speeds_per_second, 2)}/s "
            f"in {_format_elapsed(status.time_elapsed())} ............",
            end="",
            flush=True,
        )

    try:
        download = Downloader(durl, writer, cfg)
        download.on_download_status = show
        download.execute()
    except Exception as exc:
        print(f"err: {exc}")
        return False
    finally:
        if writer is not None:
            writer.close()
    return True


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command line: download a URL to a file."""
    parser = argparse.ArgumentParser(description="Download a file over several connections.")
    parser.add_argument("url")
    parser.add_argument("-o", "--output", default="", help="file to save to")
    parser.add_argument("-p", "--parallel", type=int, default=PARALLEL_SIZE, help="maximum connections")
    parser.add_argument("--cache-size", type=int, default=CACHE_SIZE, help="download buffer size")
    parser.add_argument("--max-rate", type=int, default=0, help="maximum bytes per second")
    parser.add_argument("--block-mode", action="store_true", help="split the file into fixed blocks")
    parser.add_argument("--state-path", default="", help="file that keeps the resume state")
    parser.add_argument("--test", action="store_true", help="download without saving")
    args = parser.parse_args(argv)

    cfg = Config(
        mode=RangeGenMode.BLOCK_SIZE if args.block_mode else RangeGenMode.DEFAULT,
        max_parallel=args.parallel,
        cache_size=args.cache_size,
        max_rate=args.max_rate,
        instance_state_path=args.state_path,
        is_test=args.test,
    )
    ok = do_download(args.url, args.output, cfg)
    print()
    return 0 if ok else 1