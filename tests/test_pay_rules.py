"""
test_pay_rules.py
=================

DPC60 paid time, pay lines and roster value.

Run: python -m pytest tests/test_pay_rules.py -v
"""

from datetime import date
from pathlib import Path

import pytest

from core.pay_rules import (
    BASIS_CREDIT, BASIS_DPC60, build_pay_line, calculate_paid_minutes,
    calculate_roster_value, format_minutes, format_value_line, hours_to_decimal,
    parse_hours_to_minutes,
)
from models.data_models import DutyType, Roster, RosterEntry
from parsers.roster_parser import parse_roster_text

DATA_DIR = Path(__file__).parent / 'data'


class TestHours:

    @pytest.mark.parametrize("text,minutes", [
        ('9:20', 560), ('0:05', 5), ('45:10', 2710), (' 4:00 ', 240),
    ])
    def test_parse(self, text, minutes):
        assert parse_hours_to_minutes(text) == minutes

    @pytest.mark.parametrize("text", [None, '', '920', '9:2', '9:60', 'abc'])
    def test_parse_invalid(self, text):
        assert parse_hours_to_minutes(text) is None

    def test_format(self):
        assert format_minutes(560) == '9:20'
        assert format_minutes(5) == '0:05'

    def test_decimal(self):
        assert hours_to_decimal('1:30') == 1.5
        assert hours_to_decimal(None) == 0.0


class TestDpc60:

    def test_credit_below_minimum(self):
        # 8:00 duty -> 4:48 minimum beats 2:50 credit
        paid = calculate_paid_minutes(480, 170)
        assert paid.paid_minutes == 288
        assert paid.basis == BASIS_DPC60

    def test_credit_above_minimum(self):
        paid = calculate_paid_minutes(560, 405)
        assert paid.paid_minutes == 405
        assert paid.basis == BASIS_CREDIT
        assert paid.min_minutes == 336

    def test_minimum_rounds_up(self):
        # 5:55 * 0.6 = 213.0, 5:56 * 0.6 = 213.6
        assert calculate_paid_minutes(355, None).paid_minutes == 213
        assert calculate_paid_minutes(356, None).paid_minutes == 214

    def test_credit_only(self):
        paid = calculate_paid_minutes(None, 240)
        assert paid.paid_minutes == 240
        assert paid.basis == BASIS_CREDIT
        assert calculate_paid_minutes(None, None) is None

    def test_pay_lines(self):
        assert build_pay_line('8:00', '2:50') == 'Pay: 4:48 (DPC60; roster credit 2:50)'
        assert build_pay_line('8:00', None) == 'Pay: 4:48 (DPC60)'
        assert build_pay_line('9:20', '6:45') == 'Pay: 6:45 (credit; DPC60 min 5:36)'
        assert build_pay_line(None, '4:00') is None

    def test_value_line(self):
        assert format_value_line(405, 150) == 'Value: $1,012.50'


class TestRosterValue:

    def test_fixture_roster(self):
        roster = parse_roster_text((DATA_DIR / 'roster_bp3735.txt').read_text(),
                                   today=date(2025, 12, 20))
        value = calculate_roster_value(roster, 60)
        assert value.total_paid_minutes == 3503
        assert value.total_value == 3503.0
        reserve = [e for e in value.entries if e.duty_code == 'R4']
        assert [e.paid_minutes for e in reserve] == [240, 240]

    def test_entries_without_hours_skipped(self):
        roster = Roster(entries=[
            RosterEntry(day=1, day_of_week='Thu', duty_type=DutyType.DAY_OFF),
            RosterEntry(day=2, day_of_week='Fri', duty_code='8130',
                        duty_hours='5:55', credit_hours='4:25'),
        ])
        value = calculate_roster_value(roster, 100)
        assert len(value.entries) == 1
        assert value.entries[0].date_key == '2 Fri'
        assert value.total_value == round(265 / 60 * 100, 2)

    @pytest.mark.parametrize("rate", [None, -1])
    def test_invalid_rate(self, rate):
        with pytest.raises(ValueError):
            calculate_roster_value(Roster(), rate)
