# Overview: UTC timestamp helpers; the database stores UTC-naive datetimes.

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time in UTC without tzinfo (the stored form)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes (e.g. from Postgres) are converted to UTC; naive ones pass through."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string -> UTC-naive datetime.

    Blank input gives None. A bare date means midnight UTC, an offset-less
    timestamp is taken as UTC, and "Z" / "+HH:MM" suffixes are honoured.
    Raises ValueError on anything else.
    """
    if value is None or not value.strip():
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    return to_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render as "YYYY-MM-DDTHH:MM:SSZ" (seconds precision); naive input is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = to_utc_naive(dt)
    return dt.replace(microsecond=0).isoformat() + "Z"
