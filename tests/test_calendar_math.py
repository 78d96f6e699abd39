"""
test_calendar_math.py
=====================

Month/year heuristics used to place roster rows on the calendar.

Run: python -m pytest tests/test_calendar_math.py -v
"""

from datetime import date

import pytest

from parsers.calendar_math import (
    month_from_abbreviation, expand_two_digit_year, parse_day_month, parse_roster_date,
    next_month, previous_month, is_month_rollover, anchor_for_table_start, resolve_leg_year,
)


class TestMonthTable:

    @pytest.mark.parametrize("abbr,expected", [
        ('Jan', 1), ('Dec', 12), ('DEC', 12), ('dec', 12), ('Sep', 9),
    ])
    def test_known_abbreviations(self, abbr, expected):
        assert month_from_abbreviation(abbr) == expected

    def test_unknown_abbreviation(self):
        assert month_from_abbreviation('Foo') is None
        assert month_from_abbreviation('') is None


class TestTwoDigitYears:

    def test_pivot_boundary(self):
        assert expand_two_digit_year(69) == 2069
        assert expand_two_digit_year(70) == 1970
        assert expand_two_digit_year(99) == 1999
        assert expand_two_digit_year(0) == 2000
        assert expand_two_digit_year(25) == 2025

    def test_parse_roster_date(self):
        assert parse_roster_date('29Dec25') == date(2025, 12, 29)
        assert parse_roster_date('01Jan70') == date(1970, 1, 1)

    def test_parse_roster_date_without_year(self):
        assert parse_roster_date('29Dec') is None

    def test_parse_roster_date_rejects_impossible_dates(self):
        assert parse_roster_date('31Feb26') is None
        assert parse_roster_date('12Xyz26') is None

    def test_parse_day_month(self):
        assert parse_day_month('03Jan') == (3, 1)
        assert parse_day_month('03Jan26') == (3, 1)
        assert parse_day_month('Rpt') is None


class TestMonthStepping:

    def test_december_wraps_to_january(self):
        assert next_month(2025, 12) == (2026, 1)
        assert next_month(2026, 1) == (2026, 2)

    def test_january_wraps_to_december(self):
        assert previous_month(2026, 1) == (2025, 12)
        assert previous_month(2026, 6) == (2026, 5)


class TestRollover:
    """A day-of-month drop of more than 7 means a new month"""

    def test_month_end_drop_is_rollover(self):
        assert is_month_rollover(31, 1)
        assert is_month_rollover(28, 1)

    def test_small_drop_is_not_rollover(self):
        assert not is_month_rollover(10, 3)   # exactly 7
        assert not is_month_rollover(10, 10)

    def test_first_row_never_rolls(self):
        assert not is_month_rollover(None, 1)

    def test_custom_threshold(self):
        assert is_month_rollover(10, 3, threshold=6)


class TestTableAnchor:

    def test_table_starting_later_in_month_is_previous_month(self):
        # Table starts 28th, earliest leg 2 Jan -> table began in December
        assert anchor_for_table_start(28, date(2026, 1, 2)) == (2025, 12)

    def test_table_starting_before_anchor_day_keeps_month(self):
        assert anchor_for_table_start(1, date(2026, 1, 2)) == (2026, 1)
        assert anchor_for_table_start(2, date(2026, 1, 2)) == (2026, 1)

    def test_no_table_keeps_anchor(self):
        assert anchor_for_table_start(None, date(2026, 3, 5)) == (2026, 3)


class TestLegYearTracking:

    def test_month_going_backwards_increments_year(self):
        year, tracker = resolve_leg_year(12, (2025, 12))
        assert year == 2025
        year, tracker = resolve_leg_year(1, tracker)
        assert year == 2026
        assert tracker == (2026, 1)

    def test_same_or_later_month_keeps_year(self):
        year, tracker = resolve_leg_year(2, (2026, 1))
        assert year == 2026
        assert tracker == (2026, 2)
