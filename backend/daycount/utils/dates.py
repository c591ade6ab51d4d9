from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Callable

from .errors import InvalidDateKey


Clock = Callable[[], datetime]

_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def local_now() -> datetime:
    """本地墙上时间（naive）。日期切换以本地时间为准，不做时区换算。"""
    return datetime.now()


def date_key(dt: datetime) -> str:
    # 不用 strftime：部分平台对 <1000 的年份不补零，会破坏“字符串序 == 时间序”
    return f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"


def today(clock: Clock = local_now) -> str:
    return date_key(clock())


def iso_instant(dt: datetime) -> str:
    """把本地时间转换成 UTC ISO-8601（毫秒精度），用于增量事件的 timestamp。"""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def validate_date_key(value: str) -> str:
    if not isinstance(value, str) or not _DATE_KEY_RE.match(value):
        raise InvalidDateKey(f"date must be YYYY-MM-DD, got {value!r}")
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError as e:
        raise InvalidDateKey(f"not a calendar date: {value!r}") from e
    return value


def next_local_midnight(now: datetime) -> datetime:
    return datetime(now.year, now.month, now.day) + timedelta(days=1)


def seconds_until_next_midnight(now: datetime) -> float:
    delay = (next_local_midnight(now) - now).total_seconds()
    return max(0.0, delay)
