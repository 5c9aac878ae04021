"""Time formatting in the China Standard Time zone (UTC+8)."""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone

CST = timezone(timedelta(hours=8), "CST")


def beijing_time_option(get: str) -> str:
    """Return the current UTC+8 time in the layout named by ``get``.

    "Refer" gives 2017-7-21 12:02:32.000, "printLog" 2017-7-21_12h02m32s,
    "day" 21, "ymd" 2017-7-21, "hour" 12; anything else the Unix timestamp.
    """
    now = datetime.now(CST)
    if get == "Refer":
        return (
            f"{now.year}-{now.month}-{now.day} "
            f"{now.hour:02d}:{now.minute:02d}:{now.second:02d}.{now.microsecond // 1000:03d}"
        )
    if get == "printLog":
        return (
            f"{now.year}-{now.month}-{now.day}_"
            f"{now.hour:02d}h{now.minute:02d}m{now.second:02d}s"
        )
    if get == "day":
        return str(now.day)
    if get == "ymd":
        return f"{now.year}-{now.month}-{now.day}"
    if get == "hour":
        return str(now.hour)
    return str(int(time.time()))


def format_time(t: int) -> str:
    """Format a Unix timestamp as 'YYYY-MM-DD hh:mm:ss' in UTC+8."""
    return datetime.fromtimestamp(t, CST).strftime("%Y-%m-%d %H:%M:%S")