import time

import pytest

from pcskit.workerstatus import (
    UNKNOWN_STATUS_TEXT,
    ResetController,
    StatusCode,
    WorkerStatus,
    get_status_text,
)


@pytest.mark.parametrize(
    "code, text",
    [
        (StatusCode.INIT, "初始化"),
        (StatusCode.SUCCESSED, "成功"),
        (StatusCode.NET_ERROR, "网络错误"),
        (StatusCode.CANCELED, "已取消"),
        (StatusCode.WAIT_TO_WRITE, "等待写入数据"),
    ],
)
def test_status_text(code, text):
    assert get_status_text(code) == text


def test_every_code_has_text():
    texts = {get_status_text(code) for code in StatusCode}
    assert UNKNOWN_STATUS_TEXT not in texts
    assert len(texts) == len(StatusCode)


def test_unknown_code():
    assert get_status_text(len(StatusCode) + 5) == "未知状态码"


def test_status_code_accepts_plain_int():
    assert get_status_text(int(StatusCode.PAUSED)) == "已暂停"


def test_worker_status_default_and_text():
    ws = WorkerStatus()
    assert ws.status_code == StatusCode.INIT
    ws.status_code = StatusCode.FAILED
    assert ws.status_text == "下载失败"


def test_reset_controller_limit():
    limit = 2
    rc = ResetController(limit)
    for _ in range(limit):
        assert rc.can_reset()
        rc.add_reset_num()
    assert not rc.can_reset()


def test_reset_controller_expiry():
    rc = ResetController(1, window=0.05)
    rc.add_reset_num()
    assert not rc.can_reset()
    time.sleep(0.1)
    assert rc.can_reset()


def test_reset_controller_zero_never_allows():
    rc = ResetController(0)
    assert rc.can_reset() is False