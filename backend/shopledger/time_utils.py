# Overview: UTC-naive timestamps for every ledger column and date filter.

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current UTC time without tzinfo; all stored timestamps use this form."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _strip_to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "YYYY-MM-DD", "YYYY-MM-DDTHH:MM[:SS]" with optional "Z" or offset.

    Blank input gives None. Values without an offset are taken as UTC.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    return _strip_to_utc(datetime.fromisoformat(text))


def normalize_datetime(value, *, default_now: bool = True) -> Optional[datetime]:
    """
    Order dates, stock-take dates and report bounds all pass through here.

    None (or a blank string) becomes now, or None with default_now=False.
    A plain date becomes midnight of that day.
    """
    if isinstance(value, datetime):
        return _strip_to_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"invalid datetime value: {value!r}")

    parsed = parse_iso_datetime(value)
    if parsed is None and default_now:
        return utcnow()
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO string with a trailing Z, for to_dict payloads."""
    if dt is None:
        return None
    return _strip_to_utc(dt).replace(microsecond=0).isoformat() + "Z"
