from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_millis(value: datetime) -> datetime:
    """Normalize to aware UTC truncated to millisecond precision."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    return to_utc_millis(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = ["Clock", "format_timestamp", "to_utc_millis", "utc_now"]
