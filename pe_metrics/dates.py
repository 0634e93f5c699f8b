"""
dates.py — Calendar date parsing shared by every computation module.

Dates are plain calendar days (no time zone, no day-count convention).
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional, Union

DateLike = Union[date, datetime, str]

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

CURRENT_CUTOFF_KEY = "current"


def parse_date(value: object) -> Optional[date]:
    """
    Parse a calendar date.

    Accepts ``date``/``datetime`` instances and strict ``YYYY-MM-DD`` strings.
    Returns None for anything else, including impossible dates such as
    ``2020-02-30``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _ISO_DATE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def is_valid_date(value: object) -> bool:
    return parse_date(value) is not None


def coerce_cutoff(cutoff: Optional[DateLike]) -> Optional[date]:
    """Normalize a caller-supplied cutoff; a malformed cutoff is a caller error."""
    if cutoff is None:
        return None
    parsed = parse_date(cutoff)
    if parsed is None:
        raise ValueError(f"Invalid cutoff date: {cutoff!r}")
    return parsed


def cutoff_key(cutoff: Optional[DateLike]) -> str:
    """Canonical string used in cache keys for an optional cutoff."""
    parsed = coerce_cutoff(cutoff)
    return parsed.isoformat() if parsed is not None else CURRENT_CUTOFF_KEY


def on_or_before(value: date, cutoff: Optional[date]) -> bool:
    return cutoff is None or value <= cutoff
