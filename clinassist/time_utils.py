"""Utilities for working with timestamps in UTC."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

Number = Union[int, float]
Scalar = Union[Number, str, datetime]


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""

    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to a timezone-aware UTC ``datetime``."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Optional[Scalar]) -> Optional[datetime]:
    """Coerce ISO strings, epoch seconds or datetimes into UTC ``datetime``.

    Unparseable input yields ``None`` so callers can treat the field as absent.
    """

    if value in (None, "", b""):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    try:
        return datetime.fromtimestamp(float(text), tz=timezone.utc)
    except (TypeError, ValueError):
        return None


def minutes_between(start: Optional[datetime], end: datetime) -> Optional[float]:
    """Return elapsed minutes from ``start`` to ``end`` or ``None`` when unknown."""

    if start is None:
        return None
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 60.0


def from_epoch_seconds(value: Optional[Scalar]) -> Optional[datetime]:
    """Convert ``value`` representing epoch seconds to a UTC ``datetime``."""

    if value in (None, "", b""):
        return None
    try:
        seconds = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


__all__ = ["utc_now", "ensure_utc", "parse_timestamp", "minutes_between", "from_epoch_seconds"]
