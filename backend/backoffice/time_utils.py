"""
Timestamps for the back office.

Every stored datetime (bookings, due dates, ledger dates, session expiry) is
UTC without tzinfo. Values coming in from callers go through
normalize_datetime; values going out go through to_utc_z.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def _strip_to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    return _strip_to_utc(datetime.now(timezone.utc))


def parse_iso_datetime(text: Optional[str]) -> Optional[datetime]:
    """
    Read an ISO-8601 string such as "2030-05-01", "2030-05-01T19:00",
    "2030-05-01T19:00Z" or "2030-05-01T19:00+01:00".

    Blank input gives None. Offsets are folded into UTC; a bare date is
    midnight. Malformed text raises ValueError.
    """
    if text is None or not text.strip():
        return None
    raw = text.strip()
    if raw[-1:] in ("Z", "z"):
        raw = raw[:-1] + "+00:00"
    return _strip_to_utc(datetime.fromisoformat(raw))


def normalize_datetime(value) -> Optional[datetime]:
    """Coerce a due date, booking date or ledger date to stored form."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _strip_to_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError(f"invalid datetime: {value!r}")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render a stored datetime as whole-second ISO-8601 with a Z suffix."""
    if dt is None:
        return None
    stamp = _strip_to_utc(dt).replace(microsecond=0)
    return stamp.isoformat() + "Z"
