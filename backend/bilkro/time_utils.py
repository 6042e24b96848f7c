# Overview: UTC time helpers; storage is UTC-naive and the API speaks ISO-8601 with a trailing Z.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def days_from(moment: datetime, days: int) -> datetime:
    """moment + days; used for debt terms and cart TTL cutoffs."""
    return moment + timedelta(days=days)


def whole_days_between(earlier: datetime, later: datetime) -> int:
    """Full days elapsed from earlier to later (negative if later is before earlier)."""
    return (later - earlier).days


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a query/body date into a UTC-naive datetime.

    "2026-01-31" and "2026-01-31T10:00" are taken as UTC; "...Z" and
    "...+02:00" are converted. Empty input gives None. Malformed input
    raises ValueError for the caller to turn into a ValidationError.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """2026-01-31 10:00:00 -> '2026-01-31T10:00:00Z' (seconds precision)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
