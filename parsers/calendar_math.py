"""
Calendar arithmetic for roster reports

The roster table prints only day-of-month and weekday, and the Pattern
Details section prints "29Dec" style dates without a year.  These helpers
hold the month/year heuristics used to place those rows on a real calendar:

- 3-letter month table and 2-digit year expansion (>=70 -> 1900s)
- month stepping with December/January wraparound
- rollover detection: a day-of-month drop of more than 7 starts a new month
- table anchor correction: a table starting on a later day than the
  earliest dated leg began in the previous month
"""

import re
from datetime import date
from typing import Optional, Tuple


MONTH_ABBREVIATIONS = (
    'Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
    'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec',
)

# Day-of-month decrease that counts as a move into the next month
ROLLOVER_THRESHOLD_DAYS = 7

# Two-digit years at or above this pivot belong to the 1900s
CENTURY_PIVOT = 70

_ROSTER_DATE_RE = re.compile(r'^(\d{1,2})([A-Za-z]{3})(\d{2})?$')


def month_from_abbreviation(abbr: str) -> Optional[int]:
    """'Dec' -> 12 (case-insensitive); None for anything else."""
    if not abbr:
        return None
    key = abbr.strip()[:3].capitalize()
    if key not in MONTH_ABBREVIATIONS:
        return None
    return MONTH_ABBREVIATIONS.index(key) + 1


def expand_two_digit_year(yy: int, pivot: int = CENTURY_PIVOT) -> int:
    if yy >= pivot:
        return 1900 + yy
    return 2000 + yy


def parse_day_month(token: str) -> Optional[Tuple[int, int]]:
    """'29Dec' or '29Dec25' -> (29, 12)."""
    match = _ROSTER_DATE_RE.match(token.strip())
    if not match:
        return None
    month = month_from_abbreviation(match.group(2))
    if month is None:
        return None
    return int(match.group(1)), month


def parse_roster_date(token: str) -> Optional[date]:
    """
    Parse a ddMonYY token ('29Dec25') into a date.

    Returns None when the token has no year or is not a real date.
    """
    match = _ROSTER_DATE_RE.match(token.strip())
    if not match or match.group(3) is None:
        return None
    month = month_from_abbreviation(match.group(2))
    if month is None:
        return None
    year = expand_two_digit_year(int(match.group(3)))
    try:
        return date(year, month, int(match.group(1)))
    except ValueError:
        return None


def next_month(year: int, month: int) -> Tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def previous_month(year: int, month: int) -> Tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def is_month_rollover(previous_day: Optional[int], day: int,
                      threshold: int = ROLLOVER_THRESHOLD_DAYS) -> bool:
    """True when the day-of-month drops by more than `threshold`."""
    if previous_day is None:
        return False
    return previous_day - day > threshold


def anchor_for_table_start(first_table_day: Optional[int], anchor: date) -> Tuple[int, int]:
    """
    (year, month) the duty table starts in, given the earliest dated leg.

    If the table's first day is later in the month than the anchor, the
    table must have started in the month before the anchor.
    """
    if first_table_day is not None and first_table_day > anchor.day:
        return previous_month(anchor.year, anchor.month)
    return anchor.year, anchor.month


def resolve_leg_year(month: int, tracker: Tuple[int, int]) -> Tuple[int, Tuple[int, int]]:
    """
    Year for a yearless 'ddMon' date given a (year, last_month) tracker.

    A month earlier than the last one seen means the dates crossed into a
    new year.  Returns the year and the updated tracker.
    """
    year, last_month = tracker
    if month < last_month:
        year += 1
    return year, (year, month)
