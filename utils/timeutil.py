"""Time helpers.

All timestamps are stored as naive UTC. Incoming ISO strings with an offset
are converted to UTC; naive ones are taken as UTC already.
"""
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso(value: str) -> datetime:
    """Parse "2026-02-20T10:00:00Z" / "+01:00" / naive into naive UTC."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("timestamp must be a non-empty ISO string")
    raw = value.strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(raw))


def iso(value):
    if value is None:
        return None
    return value.replace(microsecond=0).isoformat() + "Z"


def local_to_utc(day: date, at: time, tz_name: str) -> datetime:
    """Combine a wall-clock date/time in `tz_name` into naive UTC."""
    local = datetime.combine(day, at).replace(tzinfo=ZoneInfo(tz_name))
    return to_naive_utc(local)


def utc_to_local(value: datetime, tz_name: str) -> datetime:
    return value.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name))


def js_weekday(day: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7