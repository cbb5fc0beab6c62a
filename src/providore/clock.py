"""
时间源与时间戳格式。

设备端按 JavaScript 的 toISOString() 生成时间戳，这里保持同样的输出格式。
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """使用系统时间（UTC）。"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """格式化为 YYYY-MM-DDTHH:MM:SS.mmmZ。"""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """
    解析 ISO-8601 时间戳，不带时区的值按 UTC 处理。
    :raises ValueError: 无法解析时。
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
