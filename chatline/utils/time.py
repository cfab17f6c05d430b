from datetime import datetime, timedelta, timezone
from typing import Any, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)


def normalize(value: datetime) -> datetime:
    """Force UTC and drop sub-millisecond precision"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def utcnow() -> datetime:
    return normalize(datetime.now(timezone.utc))


def to_millis(value: datetime) -> int:
    return (normalize(value) - EPOCH) // _MILLISECOND


def from_millis(value: Any) -> Optional[datetime]:
    """Parse a stored millisecond timestamp, ``None`` for anything else"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return EPOCH + timedelta(milliseconds=int(value))


def optional_millis(value: Optional[datetime]) -> Optional[int]:
    return to_millis(value) if value is not None else None


def _short_date(value: datetime) -> str:
    return f"{value.day}/{value.month}/{value.year}"


def format_relative(value: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Format a past timestamp as ``Just now``, ``5m ago``, ``3h ago``, ``2d ago`` or a date"""
    if value is None:
        return ""
    now = now or utcnow()
    difference = now - value
    if difference < timedelta(minutes=1):
        return "Just now"
    if difference < timedelta(hours=1):
        return f"{difference // timedelta(minutes=1)}m ago"
    if difference < timedelta(days=1):
        return f"{difference // timedelta(hours=1)}h ago"
    if difference < timedelta(days=7):
        return f"{difference.days}d ago"
    return _short_date(value)


def format_message_time(value: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Chat list flavour: today's messages show a 12-hour clock time"""
    if value is None:
        return ""
    now = now or utcnow()
    difference = now - value
    if difference < timedelta(minutes=1):
        return "Just now"
    if difference < timedelta(hours=1):
        return f"{difference // timedelta(minutes=1)}m ago"
    if difference < timedelta(days=1):
        hour = value.hour % 12 or 12
        period = "PM" if value.hour >= 12 else "AM"
        return f"{hour}:{value.minute:02d} {period}"
    if difference < timedelta(days=7):
        return f"{difference.days}d ago"
    return _short_date(value)


def format_last_seen(is_online: bool, last_seen: datetime, now: Optional[datetime] = None) -> str:
    if is_online:
        return "Online"
    text = format_relative(last_seen, now)
    return text if text == "Just now" else f"Last seen {text}"
