"""Download worker status codes and a limiter for connection resets."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import IntEnum


class StatusCode(IntEnum):
    """State of a download worker."""

    INIT = 0
    SUCCESSED = 1
    PENDING = 2
    DOWNLOADING = 3
    WAIT_TO_WRITE = 4
    INTERNAL_ERROR = 5
    TOO_MANY_CONNECTIONS = 6
    NET_ERROR = 7
    FAILED = 8
    PAUSED = 9
    RESETED = 10
    CANCELED = 11


_STATUS_TEXT = {
    StatusCode.INIT: "初始化",
    StatusCode.SUCCESSED: "成功",
    StatusCode.PENDING: "等待响应",
    StatusCode.DOWNLOADING: "下载中",
    StatusCode.WAIT_TO_WRITE: "等待写入数据",
    StatusCode.INTERNAL_ERROR: "内部错误",
    StatusCode.TOO_MANY_CONNECTIONS: "连接数太多",
    StatusCode.NET_ERROR: "网络错误",
    StatusCode.FAILED: "下载失败",
    StatusCode.PAUSED: "已暂停",
    StatusCode.RESETED: "已重设连接",
    StatusCode.CANCELED: "已取消",
}

UNKNOWN_STATUS_TEXT = "未知状态码"


def get_status_text(code: int) -> str:
    """Human-readable text of a status code."""
    try:
        return _STATUS_TEXT[StatusCode(code)]
    except ValueError:
        return UNKNOWN_STATUS_TEXT


@dataclass
class WorkerStatus:
    """Current status of a worker."""

    status_code: StatusCode = StatusCode.INIT

    @property
    def status_text(self) -> str:
        return get_status_text(self.status_code)


class ResetController:
    """Allows at most ``max_reset_num`` new connections within a sliding window of seconds."""

    def __init__(self, max_reset_num: int, window: float = 9.0) -> None:
        self.max_reset_num = max_reset_num
        self.window = window
        self._expiries: deque[float] = deque()
        self._lock = threading.Lock()

    def _update(self) -> None:
        now = time.monotonic()
        while self._expiries and self._expiries[0] <= now:
            self._expiries.popleft()

    def add_reset_num(self) -> None:
        """Record one new connection."""
        with self._lock:
            self._update()
            self._expiries.append(time.monotonic() + self.window)

    def can_reset(self) -> bool:
        """True while fewer than the allowed number of connections are in the window."""
        with self._lock:
            self._update()
            return len(self._expiries) < self.max_reset_num