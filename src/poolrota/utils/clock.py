"""UTC time helpers shared by the engine and the store."""
from datetime import datetime, timedelta, timezone
from typing import Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(now: Union[datetime, str]) -> datetime:
    """Accept an aware/naive datetime or ISO string; naive values are UTC."""
    if isinstance(now, str):
        text = now.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        now = datetime.fromisoformat(text)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def format_timestamp(dt: Union[datetime, str]) -> str:
    """Sortable ISO-8601 UTC with millisecond precision, e.g. 2025-07-01T10:30:00.000Z."""
    dt = as_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def add_millis(timestamp: str, millis: int = 1) -> str:
    return format_timestamp(as_utc(timestamp) + timedelta(milliseconds=millis))
