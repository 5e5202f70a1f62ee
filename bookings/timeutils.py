"""Helpers for turning raw timestamps into canonical booking slots."""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional, Tuple, Union

RawInstant = Union[str, datetime, None]

_STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_instant(raw: RawInstant) -> Optional[datetime]:
    """Parse ``raw`` into an aware UTC datetime, or return ``None``.

    Strings are read as ISO-8601. A bare date means midnight, a trailing
    ``Z`` means UTC and naive values are taken to already be in UTC.
    """

    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        if text[-1] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except (ValueError, OverflowError):
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        # the offset pushes the instant past year 1 or year 9999
        return None


def normalize_to_hour(value: datetime) -> datetime:
    """Truncate ``value`` to the start of its containing hour."""

    return value.replace(minute=0, second=0, microsecond=0)


def parse_day(raw: Optional[str]) -> Optional[date]:
    """Resolve a calendar-day designator to a date.

    ``YYYY-MM-DD`` is taken literally; any other ISO instant is reduced to
    its UTC calendar day.
    """

    if not isinstance(raw, str):
        return None
    text = raw.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    instant = parse_instant(text)
    if instant is None:
        return None
    return instant.date()


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """Return the inclusive UTC start/end instants of ``day``."""

    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = datetime.combine(day, time(23, 59, 59, 999000), tzinfo=timezone.utc)
    return start, end


def serialize_instant(value: datetime) -> str:
    """Encode ``value`` as fixed-width UTC text with millisecond precision.

    The fixed width keeps lexical order equal to chronological order, which
    the day-range queries rely on.
    """

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc_value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return utc_value.isoformat(timespec="milliseconds") + "Z"


def deserialize_instant(value: str) -> datetime:
    parsed = datetime.strptime(value.rstrip("Z"), _STORAGE_FORMAT)
    return parsed.replace(tzinfo=timezone.utc)


__all__ = [
    "RawInstant",
    "day_bounds",
    "deserialize_instant",
    "normalize_to_hour",
    "parse_day",
    "parse_instant",
    "serialize_instant",
    "utc_now",
]
