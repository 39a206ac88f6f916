# Overview: UTC clock and ISO-8601 helpers shared by models and services.

"""
All timestamps are stored as naive datetimes in UTC and rendered with a
trailing "Z" on the wire.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse "YYYY-MM-DD[THH:MM[:SS]]" with an optional "Z" or offset.

    Blank input gives None; offsets are folded into naive UTC.
    Raises ValueError on anything else.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"
    return _as_naive_utc(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Wire format: second precision, UTC, trailing Z."""
    if dt is None:
        return None
    return _as_naive_utc(dt).replace(microsecond=0).isoformat() + "Z"


def date_stamp(dt: Optional[datetime] = None) -> str:
    """YYYYMMDD stamp used in generated document numbers."""
    return (dt or utcnow()).strftime("%Y%m%d")


def window_start(days: int, *, now: Optional[datetime] = None) -> datetime:
    """Start of a trailing window of `days` days ending now."""
    return (now or utcnow()) - timedelta(days=days)


def due_date(issued: datetime, terms_days: int) -> datetime:
    return issued + timedelta(days=terms_days)
