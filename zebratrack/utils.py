from __future__ import annotations

import datetime as dt
from typing import Any, Iterable, List, Optional, TypeVar

from zoneinfo import ZoneInfo

UTC = dt.timezone.utc

T = TypeVar("T")


def utcnow() -> dt.datetime:
    return dt.datetime.now(UTC)


def ensure_utc(value: dt.datetime, assume: Optional[dt.tzinfo] = None) -> dt.datetime:
    """Return an aware UTC datetime; naive values are read in ``assume`` (default UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=assume or UTC)
    return value.astimezone(UTC)


def serialize_datetime(value: dt.datetime) -> str:
    return ensure_utc(value).isoformat()


def parse_datetime(value: Any) -> Optional[dt.datetime]:
    """Decode a stored timestamp (ISO-8601 text or epoch seconds) into UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return dt.datetime.fromtimestamp(value, UTC)
    return ensure_utc(dt.datetime.fromisoformat(str(value)))


def zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def local_date(value: dt.datetime, tz_name: str) -> dt.date:
    return ensure_utc(value).astimezone(zone(tz_name)).date()


def day_bounds(day: dt.date, tz_name: str) -> tuple[dt.datetime, dt.datetime]:
    tz = zone(tz_name)
    start_local = dt.datetime.combine(day, dt.time.min, tzinfo=tz)
    end_local = start_local + dt.timedelta(days=1)
    return start_local.astimezone(UTC), end_local.astimezone(UTC)


def parse_local_timestamp(value: Optional[str], tz_name: str) -> Optional[dt.datetime]:
    """Parse Zebra's ``YYYY-MM-DD HH:MM:SS`` wall-clock timestamps into UTC."""
    if not value:
        return None
    text = value.strip()
    try:
        naive = dt.datetime.strptime(text, "%Y-%m-%d %H:%M:%S")
    except ValueError:
        parsed = dt.datetime.fromisoformat(text)
        return ensure_utc(parsed, zone(tz_name))
    return ensure_utc(naive, zone(tz_name))


def unique(values: Iterable[T]) -> List[T]:
    seen: set = set()
    result: List[T] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def is_quarter_hours(hours: float) -> bool:
    """True for positive multiples of 0.25."""
    if hours <= 0:
        return False
    quarters = hours * 4
    return abs(quarters - round(quarters)) < 1e-6
