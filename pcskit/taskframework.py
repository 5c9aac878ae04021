"""A small retrying task executor with bounded parallelism."""

from __future__ import annotations

import itertools
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Optional

from .waitgroup import WaitGroup


@dataclass
class TaskUnitRunResult:
    """Outcome of one run of a task unit."""

    succeed: bool = False
    need_retry: bool = False
    err: Optional[BaseException] = None
    result_code: int = 0
    result_message: str = ""
    extra: Any = None


@dataclass
class TaskInfo:
    """Identity and retry bookkeeping of a queued task."""

    id: str
    max_retry: int
    retry: int = 0

    def is_exceed_retry(self) -> bool:
        """True once the retry count reached the limit."""
        return self.retry >= self.max_retry


class TaskUnit(ABC):
    """A unit of work run by :class:`TaskExecutor`; hooks default to doing nothing."""

    task_info: Optional[TaskInfo] = None

    def set_task_info(self, info: TaskInfo) -> None:
        self.task_info = info

    @abstractmethod
    def run(self) -> Optional[TaskUnitRunResult]:
        """Do the work and describe the outcome."""

    def on_retry(self, last_result: TaskUnitRunResult) -> None:
        """Called before the task is queued again."""

    def on_success(self, last_result: TaskUnitRunResult) -> None:
        """Called after a successful run."""

    def on_failed(self, last_result: TaskUnitRunResult) -> None:
        """Called when the task failed for good."""

    def on_complete(self, last_result: Optional[TaskUnitRunResult]) -> None:
        """Called after every run, whatever its outcome."""

    def retry_wait(self) -> float:
        """Seconds to wait before a retry."""
        return 0.0


@dataclass
class TaskInfoItem:
    """A queued task: its info and its unit."""

    info: TaskInfo
    unit: TaskUnit


class TaskExecutor:
    """Runs queued task units, ``parallel`` at a time, retrying as requested."""

    def __init__(self, parallel: int = 1, is_failed_deque: bool = False) -> None:
        self.parallel = parallel
        self.is_failed_deque = is_failed_deque
        self.failed_deque: deque[TaskInfoItem] = deque()
        self._deque: deque[TaskInfoItem] = deque()
        self._ids = itertools.count(1)

    def append(self, unit: TaskUnit, max_retry: int) -> TaskInfo:
        """Queue ``unit`` allowing up to ``max_retry`` retries."""
        info = TaskInfo(id=str(next(self._ids)), max_retry=max_retry)
        unit.set_task_info(info)
        self._deque.append(TaskInfoItem(info=info, unit=unit))
        return info

    def append_no_retry(self, unit: TaskUnit) -> None:
        """Queue ``unit`` without retries."""
        self.append(unit, 0)

    def count(self) -> int:
        """Number of queued tasks."""
        return len(self._deque)

    def _fail(self, task: TaskInfoItem, result: TaskUnitRunResult) -> None:
        task.unit.on_failed(result)
        if self.is_failed_deque:
            self.failed_deque.append(task)
        task.unit.on_complete(result)

    def _run_task(self, task: TaskInfoItem, wg: WaitGroup) -> None:
        try:
            result = task.unit.run()
            if result is None:
                task.unit.on_complete(result)
                return
            if result.succeed:
                task.unit.on_success(result)
                task.unit.on_complete(result)
                return
            if result.need_retry:
                if task.info.is_exceed_retry():
                    self._fail(task, result)
                    return
                task.info.retry += 1
                task.unit.on_retry(result)
                task.unit.on_complete(result)
                time.sleep(task.unit.retry_wait())
                self._deque.append(task)
                return
            self._fail(task, result)
        finally:
            wg.done()

    def execute(self) -> None:
        """Run every queued task, including retries, until the queue is empty."""
        if self.is_failed_deque:
            self.failed_deque = deque()
        parallel = max(1, self.parallel)
        while True:
            wg = WaitGroup(parallel)
            while True:
                try:
                    task = self._deque.popleft()
                except IndexError:
                    break
                wg.add_delta()
                threading.Thread(target=self._run_task, args=(task, wg), daemon=True).start()
            wg.wait()
            if not self._deque:
                break