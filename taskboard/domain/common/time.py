from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union


def ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt


def to_iso(dt: datetime) -> str:
    ensure_aware(dt)
    # store as ISO 8601 with offset
    return dt.isoformat()


def from_iso(s: str) -> datetime:
    if not isinstance(s, str):
        raise TypeError(f"expected an ISO timestamp string, got {type(s).__name__}")
    # trailing "Z" is what postgres-style stores send back
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s)


def from_iso_opt(s: Optional[str]) -> Optional[datetime]:
    return from_iso(s) if s else None


def to_ymd(value: Union[date, datetime, None]) -> Optional[str]:
    """Calendar date as YYYY-MM-DD, dropping any time component."""
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def parse_ymd(raw: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Accepts YYYY-MM-DD or a full ISO timestamp and keeps only the date.
    Empty strings mean "no date".
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        raise TypeError(f"expected a date or YYYY-MM-DD string, got {type(raw).__name__}")
    raw = raw.strip()
    if not raw:
        return None
    if len(raw) > 10:
        return from_iso(raw).date()
    return date.fromisoformat(raw)
