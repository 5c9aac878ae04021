import threading
from collections import Counter

from pcskit.taskframework import (
    TaskExecutor,
    TaskInfo,
    TaskUnit,
    TaskUnitRunResult,
)


class RecordingUnit(TaskUnit):
    def __init__(self, result_factory, log, lock):
        self.result_factory = result_factory
        self.log = log
        self.lock = lock

    def _record(self, event):
        with self.lock:
            self.log.append((self.task_info.id, event))

    def run(self):
        self._record("run")
        return self.result_factory()

    def on_retry(self, last_result):
        self._record("retry")

    def on_success(self, last_result):
        self._record("success")

    def on_failed(self, last_result):
        self._record("failed")

    def on_complete(self, last_result):
        self._record("complete")


def make_units(count, factory):
    log, lock = [], threading.Lock()
    return [RecordingUnit(factory, log, lock) for _ in range(count)], log


def test_source_case_always_retrying_units():
    te = TaskExecutor()
    te.parallel = 2
    units, log = make_units(3, lambda: TaskUnitRunResult(need_retry=True))
    infos = [te.append(u, 2) for u in units]
    assert te.count() == 3
    te.execute()

    assert [i.id for i in infos] == ["1", "2", "3"]
    counts = Counter(log)
    for task_id in ("1", "2", "3"):
        assert counts[(task_id, "run")] == 3
        assert counts[(task_id, "retry")] == 2
        assert counts[(task_id, "failed")] == 1
        assert counts[(task_id, "complete")] == 3
    assert all(i.retry == 2 for i in infos)
    assert te.count() == 0


def test_success_path():
    te = TaskExecutor(parallel=3)
    units, log = make_units(4, lambda: TaskUnitRunResult(succeed=True))
    for u in units:
        te.append_no_retry(u)
    te.execute()
    counts = Counter(event for _, event in log)
    assert counts == {"run": 4, "success": 4, "complete": 4}


def test_none_result_only_completes():
    te = TaskExecutor()
    units, log = make_units(1, lambda: None)
    info = te.append(units[0], 5)
    assert te.count() == 1
    te.execute()
    assert info.id == "1"
    assert info.retry == 0
    assert te.count() == 0
    assert log == [("1", "run"), ("1", "complete")]


def test_failed_deque_collects_failures():
    te = TaskExecutor(parallel=2, is_failed_deque=True)
    units, log = make_units(2, lambda: TaskUnitRunResult(err=ValueError("boom")))
    for u in units:
        te.append_no_retry(u)
    te.execute()
    assert sorted(item.info.id for item in te.failed_deque) == ["1", "2"]
    assert Counter(event for _, event in log)["failed"] == 2


def test_no_retry_means_single_run_then_failure():
    te = TaskExecutor()
    units, log = make_units(1, lambda: TaskUnitRunResult(need_retry=True))
    te.append_no_retry(units[0])
    te.execute()
    assert log == [("1", "run"), ("1", "failed"), ("1", "complete")]


def test_task_info_exceed_retry():
    info = TaskInfo(id="1", max_retry=1)
    assert info.is_exceed_retry() is False
    info.retry = 1
    assert info.is_exceed_retry() is True


def test_empty_executor_count_and_execute():
    te = TaskExecutor(parallel=0)
    te.execute()
    assert te.count() == 0