from __future__ import annotations

import math
import re
import warnings
from datetime import date, datetime, timedelta
from numbers import Real
from typing import Any

import pandas as pd

"""Date normalization for spreadsheet cell values.

Cells that carry a date can arrive in three shapes depending on how the workbook
was authored and read: a serial day number, a string, or a native datetime
(pandas Timestamp included). Everything is reduced to a plain ``datetime.date``,
which carries calendar fields only, so no timezone offset can leak between the
value read from the sheet and the value written to storage.
"""

__all__ = [
    "SERIAL_EPOCH_OFFSET",
    "parse_date",
    "format_for_storage",
    "inclusive_days",
]

# Days between 1899-12-30 (spreadsheet serial day 0 after the 1900 leap-year bug)
# and 1970-01-01.
SERIAL_EPOCH_OFFSET = 25569
_UNIX_EPOCH = date(1970, 1, 1)

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_HAS_DIGIT_RE = re.compile(r"\d")
_HAS_SEPARATOR_RE = re.compile(r"[/\-.\s]")


def _from_serial(value: float) -> date | None:
    if not math.isfinite(value):
        return None
    days = math.floor(value - SERIAL_EPOCH_OFFSET)
    try:
        return _UNIX_EPOCH + timedelta(days=days)
    except OverflowError:
        return None


def _from_string(text: str) -> date | None:
    text = text.strip()
    if not text:
        return None

    m = _ISO_DATE_RE.match(text)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            pass  # e.g. 2024-02-30: let the generic parser have a go

    if not (_HAS_DIGIT_RE.search(text) and _HAS_SEPARATOR_RE.search(text)):
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(text, errors="coerce")
        except (ValueError, OverflowError):
            return None
    if parsed is None or pd.isna(parsed):
        return None
    return date(parsed.year, parsed.month, parsed.day)


def parse_date(value: Any) -> date | None:
    """Convert a raw cell value into a calendar date.

    Returns ``None`` for anything that is empty or cannot be interpreted; callers
    treat that as "field absent". Never raises.
    """
    if value is None or isinstance(value, bool):
        return None
    # datetime is a subclass of date, check it first
    if isinstance(value, datetime):
        if pd.isna(value):  # NaT
            return None
        return date(value.year, value.month, value.day)
    if isinstance(value, date):
        return value
    if isinstance(value, Real):
        return _from_serial(float(value))
    if isinstance(value, str):
        return _from_string(value)
    return None


def format_for_storage(value: Any) -> str | None:
    """Render a date (or anything ``parse_date`` accepts) as ``YYYY-MM-DD``."""
    d = parse_date(value)
    if d is None:
        return None
    return d.isoformat()


def inclusive_days(start: date, end: date) -> int:
    """Number of calendar days covered by ``start``..``end``, both ends included."""
    return (end - start).days + 1
