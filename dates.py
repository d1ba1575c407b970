"""
Date normalization for schedule imports and pattern ranges.

Schedules arrive from spreadsheets and JSON clients in several shapes: raw
spreadsheet serial numbers, ``16-Jun-25`` style strings, ISO ``2025-06-16``
strings and the occasional free-form date.  ``normalize`` turns any of them
into a ``CanonicalDate`` or raises ``DateError``.  It is the only place in
the engine that parses dates.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from typing import NamedTuple, Union

import pandas as pd

from constants import (
    EXCEL_EPOCH,
    MONTH_ABBREVIATIONS,
    TWO_DIGIT_YEAR_PIVOT,
    WEEKEND_DAYS,
)
from exceptions import DateError

ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
DAY_MONTH_YEAR_RE = re.compile(r'^(\d{1,2})-([A-Za-z]{3})-(\d{2})$')

INVALID_FORMAT = 'invalid date format'
INVALID_MONTH = 'invalid month abbreviation'
INVALID_TYPE = 'invalid date type'


class CanonicalDate(NamedTuple):
    iso: str
    value: date

    def __str__(self):
        return self.iso


def _canonical(day: date) -> CanonicalDate:
    return CanonicalDate(day.isoformat(), day)


def from_serial(serial: Union[int, float]) -> CanonicalDate:
    """Convert a spreadsheet serial number (1900 date system) to a date"""
    if not math.isfinite(serial):
        raise DateError(INVALID_FORMAT, serial)
    try:
        day = EXCEL_EPOCH + timedelta(days=math.floor(serial))
    except OverflowError:
        raise DateError(INVALID_FORMAT, serial)
    return _canonical(day)


def _from_iso(text: str) -> CanonicalDate:
    try:
        day = datetime.strptime(text, '%Y-%m-%d').date()
    except ValueError:
        raise DateError(INVALID_FORMAT, text)
    return CanonicalDate(text, day)


def _from_day_month_year(text: str, match) -> CanonicalDate:
    day_part, month_abbr, year_part = match.groups()
    month = MONTH_ABBREVIATIONS.get(month_abbr)
    if month is None:
        raise DateError(INVALID_MONTH, month_abbr)

    two_digit_year = int(year_part)
    century = 2000 if two_digit_year < TWO_DIGIT_YEAR_PIVOT else 1900
    try:
        day = date(century + two_digit_year, month, int(day_part))
    except ValueError:
        raise DateError(INVALID_FORMAT, text)
    return _canonical(day)


def _from_free_form(text: str) -> CanonicalDate:
    try:
        stamp = pd.to_datetime(text)
    except (ValueError, TypeError, OverflowError):
        raise DateError(INVALID_FORMAT, text)
    if pd.isna(stamp):
        raise DateError(INVALID_FORMAT, text)
    if stamp.tzinfo is not None:
        stamp = stamp.tz_convert('UTC')
    return _canonical(stamp.date())


def normalize(value) -> CanonicalDate:
    """
    Normalize a schedule date.

    Numbers are spreadsheet serials, ``YYYY-MM-DD`` strings are taken as-is,
    ``D[D]-MMM-YY`` strings use the fixed month table, and anything else that
    is a string goes through the general pandas parser.
    """
    if isinstance(value, bool):
        raise DateError(INVALID_TYPE, value)
    if isinstance(value, (int, float)):
        return from_serial(value)
    if not isinstance(value, str):
        raise DateError(INVALID_TYPE, value)

    text = value.strip()
    if not text:
        raise DateError(INVALID_FORMAT, value)
    if ISO_DATE_RE.match(text):
        return _from_iso(text)
    match = DAY_MONTH_YEAR_RE.match(text)
    if match:
        return _from_day_month_year(text, match)
    return _from_free_form(text)


def to_date(value) -> date:
    """Accept a date object or anything ``normalize`` understands"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return normalize(value).value


def is_weekend(day: date) -> bool:
    return day.weekday() in WEEKEND_DAYS


def date_range(start: date, end: date):
    """Generate dates from start to end (inclusive)"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
