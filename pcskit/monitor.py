"""Supervises the workers of one download: completion, resets and range splitting."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from .dlcommon import MIN_PARALLEL_SIZE
from .instancestate import InstanceState
from .pcsutil import trigger
from .transfer import DownloadInstanceInfo, DownloadStatus, Range
from .verbose import verbosef
from .worker import Worker, sort_by_left_desc
from .workerstatus import ResetController, StatusCode


class NoWorkersError(RuntimeError):
    """Raised when a monitor is started without workers."""

    def __init__(self, message: str = "no workers") -> None:
        super().__init__(message)


class Monitor:
    """Runs workers and keeps the download moving until every range is done."""

    completion_poll_interval = 1.0
    monitor_interval = 0.99
    new_work_interval = 0.099

    def __init__(self) -> None:
        self.workers: list[Worker] = []
        self.status: Optional[DownloadStatus] = None
        self.instance_state: Optional[InstanceState] = None
        self.completed = threading.Event()
        self.err: Optional[BaseException] = None
        self.reset_controller = ResetController(80)
        self.is_reload_worker = False
        self._last_available_index = 0

    def append(self, worker: Optional[Worker]) -> None:
        """Add a worker; None is ignored."""
        if worker is None:
            return
        self.workers.append(worker)

    def get_available_worker(self) -> Optional[Worker]:
        """A finished worker, searched round-robin from the last one found."""
        count = len(self.workers)
        for i in range(self._last_available_index, self._last_available_index + count):
            index = i % count
            worker = self.workers[index]
            if worker.completed():
                self._last_available_index = index
                return worker
        return None

    def get_all_workers_range(self) -> list[Optional[Range]]:
        return [worker.range for worker in self.workers]

    def num_left_workers(self) -> int:
        return sum(1 for worker in self.workers if not worker.completed())

    def is_left_workers_all_failed(self) -> bool:
        """True when at least one worker is unfinished and every unfinished one failed."""
        left = [worker for worker in self.workers if not worker.completed()]
        return bool(left) and all(worker.failed() for worker in left)

    def _watch_completion(self) -> None:
        while not self.completed.wait(self.completion_poll_interval):
            complete_num = 0
            for worker in list(self.workers):
                code = worker.status.status_code
                if code == StatusCode.INTERNAL_ERROR:
                    self.err = worker.err
                    self.completed.set()
                    return
                if code in (StatusCode.SUCCESSED, StatusCode.CANCELED):
                    complete_num += 1
            gen = self.status.gen if self.status is not None else None
            if complete_num >= len(self.workers) and (gen is None or gen.is_done()):
                self.completed.set()
                return

    def _register_all_completed(self) -> None:
        self.completed.clear()
        trigger(self._watch_completion)

    def reset_failed_and_net_error_workers(self) -> None:
        """Restart workers that failed or hit a network error, within the reset budget."""
        for worker in self.workers:
            if not self.reset_controller.can_reset():
                continue
            code = worker.status.status_code
            if code not in (StatusCode.NET_ERROR, StatusCode.FAILED):
                continue
            verbosef(
                "DEBUG: monitor: ResetFailedAndNetErrorWorkers: reset %s worker, id: %d\n",
                code.name,
                worker.id,
            )
            worker.reset()
            self.reset_controller.add_reset_num()

    def range_worker(self, f: Callable[[int, Worker], bool]) -> None:
        """Call ``f(index, worker)`` for each worker until it returns False."""
        for index, worker in enumerate(self.workers):
            if not f(index, worker):
                break

    def pause(self) -> None:
        for worker in self.workers:
            worker.pause()

    def resume(self) -> None:
        for worker in self.workers:
            worker.resume()

    def try_add_new_work(self) -> None:
        """Give the next generated range to an idle worker."""
        if self.status is None:
            return
        gen = self.status.gen
        if gen is None or gen.is_done():
            return
        if not self.reset_controller.can_reset():
            return
        worker = self.get_available_worker()
        if worker is None:
            return
        _, r = gen.gen_range()
        if r is None:
            return
        worker.set_range(r)
        worker.clear_status()
        self.reset_controller.add_reset_num()
        verbosef("MONITOR: worker[%d] add new range: %s\n", worker.id, r.show_details())
        trigger(worker.execute)

    def dynamic_split_worker(self, worker: Worker) -> None:
        """Hand the second half of ``worker``'s remaining range to an idle worker."""
        if not self.reset_controller.can_reset():
            return
        if worker.status.status_code not in (
            StatusCode.DOWNLOADING,
            StatusCode.FAILED,
            StatusCode.NET_ERROR,
        ):
            return
        available = self.get_available_worker()
        if available is None or available is worker:
            return

        worker_range = worker.range
        end = worker_range.end
        middle = (worker_range.begin + end) // 2
        if end - middle < MIN_PARALLEL_SIZE // 5:
            return

        if available.range is None:
            available.range = Range(middle, end)
        else:
            available.range.begin = middle
            available.range.end = end
        available.clear_status()
        worker_range.end = middle

        self.reset_controller.add_reset_num()
        verbosef("MONITOR: worker duplicated: %d <- %d\n", available.id, worker.id)
        trigger(available.execute)

    def reset_worker(self, worker: Worker) -> None:
        """Reconnect a worker that is stalled at zero speed."""
        if not self.reset_controller.can_reset():
            return
        if worker.completed():
            return
        if worker.get_speeds_per_second() != 0:
            return
        if worker.status.status_code in (
            StatusCode.PENDING,
            StatusCode.RESETED,
            StatusCode.WAIT_TO_WRITE,
            StatusCode.PAUSED,
        ):
            return
        self.reset_controller.add_reset_num()
        verbosef("MONITOR: worker[%d] reload\n", worker.id)
        worker.reset()

    def _on_monitor_tick(self) -> None:
        self.reset_failed_and_net_error_workers()
        self.status.update_speeds()

        if self.instance_state is not None:
            self.instance_state.put(
                DownloadInstanceInfo(download_status=self.status, ranges=self.get_all_workers_range())
            )

        if not self.is_reload_worker:
            return

        self.status.update_max_speeds(self.status.speeds_per_second)
        all_failed = self.is_left_workers_all_failed()
        if self.status.speeds_per_second < self.status.max_speeds // 6 or all_failed:
            if all_failed:
                verbosef("DEBUG: monitor: All workers failed\n")
            self.status.clear_max_speeds()

            verbosef("DEBUG: monitor: start duplicate.\n")
            sort_by_left_desc(self.workers)
            for worker in list(self.workers):
                self.dynamic_split_worker(worker)

            verbosef("DEBUG: monitor: start reload.\n")
            for worker in list(self.workers):
                self.reset_worker(worker)

    def execute(self, cancel_event: Optional[threading.Event]) -> None:
        """Run all workers until they finish, fail internally, or ``cancel_event`` is set.

        An error ends up in :attr:`err`.
        """
        if not self.workers:
            self.err = NoWorkersError()
            return

        if self.status is None:
            self.status = DownloadStatus()

        for worker in self.workers:
            worker.download_status = self.status
            trigger(worker.execute)

        self._register_all_completed()
        now = time.monotonic()
        next_monitor = now + self.monitor_interval
        next_new_work = now + self.new_work_interval

        while True:
            if cancel_event is not None and cancel_event.is_set():
                for worker in self.workers:
                    try:
                        worker.cancel()
                    except RuntimeError as exc:
                        verbosef("DEBUG: cancel failed, worker id: %d, err: %s\n", worker.id, exc)
                return
            if self.completed.is_set():
                return

            now = time.monotonic()
            if now >= next_monitor:
                next_monitor = now + self.monitor_interval
                self._on_monitor_tick()
            if now >= next_new_work:
                next_new_work = now + self.new_work_interval
                self.try_add_new_work()

            timeout = max(0.0, min(next_monitor, next_new_work) - time.monotonic())
            self.completed.wait(timeout)