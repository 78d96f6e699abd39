"""
test_calendar_builder.py
========================

Roster -> calendar events: table entries, duty periods from Pattern
Details, flight legs, multi-day pattern events, DPC60 pay lines, public
Busy/Free events and multi-roster merging.

Run: python -m pytest tests/test_calendar_builder.py -v
"""

import re
from datetime import date, datetime
from pathlib import Path

import pytest
import pytz

from models.data_models import (
    BusyStatus, DutyPattern, DutyType, Employee, Roster, RosterEntry, Transparency,
)
from core.calendar_builder import (
    CalendarEventBuilder, is_duty_type_busy, parse_time, stable_uid_for_entry,
    build_flight_entry_index,
)
from core.parameters import CalendarParameters
from parsers.roster_parser import parse_roster_text


# ============================================================================
# HELPERS
# ============================================================================

DATA_DIR = Path(__file__).parent / 'data'
TODAY = date(2025, 12, 20)
DTSTAMP = datetime(2025, 12, 20, 0, 0, tzinfo=pytz.utc)

AIRPORT_ZONES = {
    'PER': 'Australia/Perth',
    'SYD': 'Australia/Sydney',
    'BNE': 'Australia/Brisbane',
    'KTA': 'Australia/Perth',
    'MEL': 'Australia/Melbourne',
}


def make_builder(**params) -> CalendarEventBuilder:
    return CalendarEventBuilder(AIRPORT_ZONES.get, CalendarParameters(**params))


def load_sample() -> Roster:
    text = (DATA_DIR / 'roster_bp3735.txt').read_text()
    return parse_roster_text(text, today=TODAY)


def find_event(events, title_prefix):
    matches = [e for e in events if e.title.startswith(title_prefix)]
    assert matches, f"no event titled {title_prefix!r}"
    return matches[0]


def make_entry(day, duty_type=DutyType.FLIGHT, month=1, year=2026, **fields) -> RosterEntry:
    return RosterEntry(day=day, day_of_week='Mon', duty_type=duty_type,
                       month=month, year=year, **fields)


def make_pattern(code, day, report_port, report_time, release_port, release_time):
    return DutyPattern(
        duty_code=code, dated=day,
        report_port=report_port, report_time=report_time,
        release_port=release_port, release_time=release_time,
    )


# ============================================================================
# TIME HELPERS & UIDS
# ============================================================================

class TestTimeParsing:

    def test_hhmm(self):
        assert parse_time('0615') == (6, 15)
        assert parse_time('0012+1') == (0, 12)

    @pytest.mark.parametrize("value", [None, '', '615', '2460', '99xx', '12:30'])
    def test_invalid(self, value):
        assert parse_time(value) is None


class TestStableUid:

    def test_identical_entries_share_uid(self):
        a = make_entry(5, DutyType.RESERVE, duty_code='R4', sign_on='0400', sign_off='1600')
        b = make_entry(5, DutyType.RESERVE, duty_code='R4', sign_on='0400', sign_off='1600')
        assert stable_uid_for_entry(a, 'PER') == stable_uid_for_entry(b, 'PER')

    def test_uid_depends_on_content(self):
        a = make_entry(5, DutyType.RESERVE, duty_code='R4', sign_on='0400', sign_off='1600')
        b = make_entry(5, DutyType.RESERVE, duty_code='R4', sign_on='0400', sign_off='1700')
        assert stable_uid_for_entry(a, 'PER') != stable_uid_for_entry(b, 'PER')
        assert stable_uid_for_entry(a, 'PER') != stable_uid_for_entry(a, 'SYD')

    def test_uid_format(self):
        uid = stable_uid_for_entry(make_entry(5, duty_code='8001A1'), 'PER')
        assert re.match(r'^2026-1-5-[0-9a-f]{16}@roster-calendar$', uid)


# ============================================================================
# FULL CALENDAR FROM THE SAMPLE ROSTER
# ============================================================================

class TestFullCalendar:

    def test_event_count(self):
        events = make_builder().convert_roster_to_events(load_sample())
        # 21 non-flight entries + 6 duty periods + 2 pattern events + 9 legs
        assert len(events) == 38
        assert len({e.uid for e in events}) == 38

    def test_flight_rows_replaced_by_duty_periods(self):
        events = make_builder().convert_roster_to_events(load_sample())
        titles = [e.title for e in events]
        assert not any(t.startswith('Duty: 8001A1 -') for t in titles)
        assert titles.count('Duty: 8130') == 2

    def test_duty_period_converted_to_utc(self):
        events = make_builder().convert_roster_to_events(load_sample())
        duty = find_event(events, 'Duty: 8001A1')
        # 06:15 Perth on 29 Dec = 22:15Z on 28 Dec
        assert duty.start == (2025, 12, 28, 22, 15)
        assert duty.end == (2025, 12, 29, 10, 0)

    def test_duty_period_description(self):
        events = make_builder().convert_roster_to_events(load_sample())
        second = [e for e in events if e.title == 'Duty: 8130'][1]
        assert second.start == (2026, 1, 2, 23, 40)
        assert second.end == (2026, 1, 3, 9, 0)
        assert 'Report: SYD 1040' in second.description
        assert 'Release: PER 1700' in second.description
        assert 'Flights: QF516 SYD-BNE, QF937 BNE-PER' in second.description
        assert 'Pay: 6:45 (credit; DPC60 min 5:36)' in second.description
        assert 'Timezone (Report): Australia/Sydney' in second.description
        assert 'Timezone (Release): Australia/Perth' in second.description

    def test_dpc60_applies_when_credit_is_low(self):
        events = make_builder().convert_roster_to_events(load_sample())
        duty = find_event(events, 'Duty: 8044A1')
        assert 'Pay: 4:48 (DPC60; roster credit 2:50)' in duty.description
        assert 'PAX QF1714 PER-KTA' in duty.description

    def test_pay_rate_adds_value_line(self):
        events = make_builder().convert_roster_to_events(load_sample(), pay_rate=150.0)
        second = [e for e in events if e.title == 'Duty: 8130'][1]
        assert 'Value: $1,012.50' in second.description

    def test_flight_leg_events(self):
        events = make_builder().convert_roster_to_events(load_sample())
        leg = find_event(events, 'QF940 PER-BNE')
        assert leg.title == 'QF940 PER-BNE 0715-1320'
        assert leg.start == (2025, 12, 28, 23, 15)
        assert leg.end == (2025, 12, 29, 3, 20)
        assert leg.uid == '2025-12-29-flight-QF940-PER-BNE@roster-calendar'

    def test_passive_leg_title(self):
        events = make_builder().convert_roster_to_events(load_sample())
        leg = find_event(events, 'PAX QF1714')
        assert leg.title == 'PAX QF1714 PER-KTA 0700-0845'
        assert 'Type: Passive (Positioning)' in leg.description

    def test_all_day_entries(self):
        events = make_builder().convert_roster_to_events(load_sample())
        day_off = find_event(events, 'Day Off')
        assert day_off.start == (2025, 12, 30)
        assert day_off.duration == {'days': 1}
        assert day_off.end is None
        assert find_event(events, 'Available Day').start == (2025, 12, 31)
        assert find_event(events, 'Annual Leave').start == (2026, 1, 12)
        assert find_event(events, 'Blank Day').start == (2026, 1, 20)

    def test_reserve_entry_uses_base_zone(self):
        events = make_builder().convert_roster_to_events(load_sample())
        reserve = find_event(events, 'Reserve Duty: R4')
        assert reserve.start == (2026, 1, 4, 20, 0)
        assert reserve.end == (2026, 1, 5, 8, 0)
        assert 'Credit Hours: 4:00' in reserve.description
        assert 'Timezone: Australia/Perth' in reserve.description

    def test_personal_leave_block(self):
        events = make_builder().convert_roster_to_events(load_sample())
        leave = find_event(events, 'Personal Leave')
        assert leave.start == (2026, 1, 19, 1, 0)
        assert leave.duration == {'hours': 8}

    def test_simulator_and_ep_titles(self):
        events = make_builder().convert_roster_to_events(load_sample())
        assert find_event(events, 'Simulator:').title == 'Simulator: SIM - B737A'
        assert find_event(events, 'Emergency Procedures:').title == 'Emergency Procedures: EP1'

    def test_award_code_not_in_descriptions(self):
        events = make_builder().convert_roster_to_events(load_sample())
        assert not any('AW01' in e.description for e in events)


# ============================================================================
# PATTERN EVENTS
# ============================================================================

class TestPatternEvents:

    def test_short_slip_pattern(self):
        events = make_builder().convert_roster_to_events(load_sample())
        pattern = find_event(events, 'Pattern: 8130')
        assert pattern.title == 'Pattern: 8130 SYD'
        assert pattern.start == (2026, 1, 2)
        assert pattern.end == (2026, 1, 4)
        assert 'Away from base: PER' in pattern.description
        assert 'Slip ports: SYD' in pattern.description
        assert 'Long slip credit' not in pattern.description
        assert '2026-01-03: SYD-PER 1040-1700' in pattern.description

    def test_long_slip_pattern(self):
        events = make_builder().convert_roster_to_events(load_sample())
        pattern = find_event(events, 'Pattern: PLFP02A1')
        assert pattern.title == 'Pattern: PLFP02A1 SYD (Long Slip)'
        assert 'Long slip credit: SYD 45:10' in pattern.description
        assert pattern.start == (2026, 1, 14)
        assert pattern.end == (2026, 1, 17)

    def test_single_duty_patterns_get_no_pattern_event(self):
        events = make_builder().convert_roster_to_events(load_sample())
        assert not any(e.title.startswith('Pattern: 8001A1') for e in events)
        assert not any(e.title.startswith('Pattern: 8044A1') for e in events)

    @pytest.mark.parametrize("report_time,is_long", [
        ('2100', False),   # exactly 30:00
        ('2101', True),    # 30:01
    ])
    def test_long_slip_threshold_is_strict(self, report_time, is_long):
        roster = Roster(
            employee=Employee(base='PER'),
            duty_patterns=[
                make_pattern('3000', date(2026, 1, 5), 'PER', '0600', 'SYD', '1500'),
                make_pattern('3000', date(2026, 1, 6), 'SYD', report_time, 'PER', '2330'),
            ],
        )
        events = make_builder().create_all_day_pattern_events(roster)
        assert len(events) == 1
        assert events[0].title.startswith('Pattern: 3000 SYD')
        assert events[0].title.endswith('(Long Slip)') == is_long

    def test_repeated_slip_port_listed_once(self):
        roster = Roster(
            employee=Employee(base='PER'),
            duty_patterns=[
                make_pattern('X1', date(2026, 1, 5), 'PER', '0600', 'MEL', '1200'),
                make_pattern('X1', date(2026, 1, 6), 'MEL', '0800', 'MEL', '1800'),
                make_pattern('X1', date(2026, 1, 8), 'MEL', '0900', 'PER', '1500'),
            ],
        )
        events = make_builder().create_all_day_pattern_events(roster)
        assert len(events) == 1
        # First slip is 20h, second is 39h
        assert events[0].title == 'Pattern: X1 MEL (Long Slip)'
        assert 'Slip ports: MEL\n' in events[0].description
        assert 'Long slip credit: MEL 39:00\n' in events[0].description

    def test_pattern_entirely_at_base_is_skipped(self):
        roster = Roster(
            employee=Employee(base='PER'),
            duty_patterns=[
                make_pattern('4000', date(2026, 1, 5), 'PER', '0600', 'PER', '1500'),
                make_pattern('4000', date(2026, 1, 6), 'PER', '0600', 'PER', '1500'),
            ],
        )
        assert make_builder().create_all_day_pattern_events(roster) == []

    def test_single_day_pattern_is_skipped(self):
        roster = Roster(
            employee=Employee(base='PER'),
            duty_patterns=[
                make_pattern('5000', date(2026, 1, 5), 'PER', '0500', 'KTA', '0900'),
                make_pattern('5000', date(2026, 1, 5), 'KTA', '1300', 'PER', '1700'),
            ],
        )
        assert make_builder().create_all_day_pattern_events(roster) == []

    def test_no_base_no_pattern_events(self):
        roster = Roster(duty_patterns=[
            make_pattern('3000', date(2026, 1, 5), 'PER', '0600', 'SYD', '1500'),
            make_pattern('3000', date(2026, 1, 6), 'SYD', '2100', 'PER', '2330'),
        ])
        assert make_builder().create_all_day_pattern_events(roster) == []


# ============================================================================
# ENTRY EDGE CASES
# ============================================================================

class TestEntryEvents:

    def test_sign_off_after_midnight_rolls_to_next_day(self):
        roster = Roster(employee=Employee(base='PER'), entries=[
            make_entry(29, month=12, year=2025, duty_code='8026A4', service='QF940',
                       sign_on='1650', sign_off='0012', port='PER'),
        ])
        [event] = make_builder().convert_roster_to_events(roster)
        assert event.title == 'Duty: 8026A4 - QF940'
        assert event.start == (2025, 12, 29, 8, 50)
        assert event.end == (2025, 12, 29, 16, 12)

    def test_flight_entry_pay_line_without_patterns(self):
        roster = Roster(employee=Employee(base='PER'), entries=[
            make_entry(5, duty_code='8001A1', sign_on='0600', sign_off='1600',
                       duty_hours='10:00', credit_hours='5:00', port='PER'),
        ])
        [event] = make_builder().convert_roster_to_events(roster)
        assert 'Pay: 6:00 (DPC60; roster credit 5:00)' in event.description

    def test_unparseable_time_omits_only_that_event(self):
        roster = Roster(employee=Employee(base='PER'), entries=[
            make_entry(5, DutyType.RESERVE, duty_code='R4', sign_on='04xx', sign_off='1600'),
            make_entry(6, DutyType.DAY_OFF, duty_code='D/O'),
        ])
        events = make_builder().convert_roster_to_events(roster)
        assert [e.title for e in events] == ['Day Off']

    def test_unknown_zone_omits_event(self):
        builder = CalendarEventBuilder({'XXX': 'Mars/Olympus'}.get)
        roster = Roster(entries=[
            make_entry(5, DutyType.RESERVE, duty_code='R4', sign_on='0400',
                       sign_off='1600', port='XXX'),
        ])
        assert builder.convert_roster_to_events(roster) == []

    def test_sign_on_without_sign_off_gets_default_duration(self):
        roster = Roster(employee=Employee(base='PER'), entries=[
            make_entry(5, DutyType.SIMULATOR, duty_code='SIM', sign_on='1300'),
        ])
        [event] = make_builder().convert_roster_to_events(roster)
        assert event.duration == {'hours': 8}
        assert event.end is None

    def test_timed_type_without_times_is_all_day(self):
        roster = Roster(employee=Employee(base='PER'), entries=[
            make_entry(15, duty_code='PLFP02A1'),
        ])
        [event] = make_builder().convert_roster_to_events(roster)
        assert event.start == (2026, 1, 15)
        assert event.duration == {'days': 1}

    def test_unknown_port_uses_default_zone(self):
        roster = Roster(entries=[
            make_entry(15, DutyType.RESERVE, month=2, duty_code='R5',
                       sign_on='0501', sign_off='1700'),
        ])
        [event] = make_builder().convert_roster_to_events(roster)
        # 05:01 Sydney daylight time = 18:01Z the day before
        assert event.start == (2026, 2, 14, 18, 1)

    def test_entries_without_month_are_placed(self):
        roster = parse_roster_text((DATA_DIR / 'roster_bp3735.txt').read_text(), today=TODAY)
        bare = Roster(
            employee=roster.employee,
            entries=[RosterEntry(day=e.day, day_of_week=e.day_of_week, duty_type=e.duty_type,
                                 duty_code=e.duty_code) for e in roster.entries],
            summary=roster.summary,
        )
        events = make_builder().convert_roster_to_events(bare)
        assert find_event(events, 'Day Off').start == (2025, 12, 30)

    def test_entry_index_prefers_rows_with_hours(self):
        bare = make_entry(3, duty_code='8130')
        with_hours = make_entry(3, duty_code='8130', duty_hours='9:20', credit_hours='6:45')
        index = build_flight_entry_index([bare, with_hours])
        assert index[(2026, 1, 3, '8130')] is with_hours
        index = build_flight_entry_index([with_hours, bare])
        assert index[(2026, 1, 3, '8130')] is with_hours


# ============================================================================
# PUBLIC CALENDAR
# ============================================================================

class TestPublicCalendar:

    @pytest.mark.parametrize("duty_type,busy", [
        (DutyType.FLIGHT, True),
        (DutyType.RESERVE, True),
        (DutyType.SIMULATOR, True),
        (DutyType.EMERGENCY_PROCEDURES, True),
        (DutyType.PERSONAL_LEAVE, True),
        (DutyType.DAY_OFF, False),
        (DutyType.AVAILABLE_DAY, False),
        (DutyType.ANNUAL_LEAVE, False),
        (DutyType.BLANK_DAY, False),
    ])
    def test_busy_mapping(self, duty_type, busy):
        assert is_duty_type_busy(duty_type) is busy

    def test_one_redacted_event_per_entry(self):
        events = make_builder().convert_roster_to_public_events(load_sample())
        assert len(events) == 28
        assert {e.title for e in events} == {'Busy', 'Free'}
        assert {e.description for e in events} == {'Unavailable', 'Available'}
        assert sum(1 for e in events if e.title == 'Busy') == 13

    def test_status_and_transparency(self):
        events = make_builder().convert_roster_to_public_events(load_sample())
        for event in events:
            if event.title == 'Busy':
                assert event.busy_status == BusyStatus.BUSY
                assert event.transp == Transparency.OPAQUE
            else:
                assert event.busy_status == BusyStatus.FREE
                assert event.transp == Transparency.TRANSPARENT

    def test_timing_matches_full_calendar(self):
        roster = load_sample()
        builder = make_builder()
        full = find_event(builder.convert_roster_to_events(roster), 'Reserve Duty: R4')
        public = builder.convert_roster_to_public_events(roster)
        assert any(e.start == full.start and e.end == full.end for e in public)

    def test_public_ics_leaks_nothing(self):
        ics = make_builder().generate_public_ics_for_rosters([load_sample()], dtstamp=DTSTAMP)
        for forbidden in ('QF', '8001A1', 'PLFP02A1', 'AW01', 'SYD', 'PER',
                          'Credit', 'credit', 'Pay:', 'Reserve', 'Duty'):
            assert forbidden not in ics
        assert 'SUMMARY:Busy' in ics
        assert 'SUMMARY:Free' in ics
        assert 'X-MICROSOFT-CDO-BUSYSTATUS:BUSY' in ics
        assert 'TRANSP:TRANSPARENT' in ics


# ============================================================================
# MERGING ACROSS ROSTER VERSIONS
# ============================================================================

class TestMerging:

    def test_same_roster_twice_dedups_by_uid(self):
        roster = load_sample()
        builder = make_builder()
        once = builder.convert_rosters_to_events([roster])
        twice = builder.convert_rosters_to_events([roster, roster])
        assert len(once) == len(twice)

        ics_once = builder.generate_ics_for_rosters([roster], dtstamp=DTSTAMP)
        ics_twice = builder.generate_ics_for_rosters([roster, roster], dtstamp=DTSTAMP)
        assert ics_once.count('BEGIN:VEVENT') == ics_twice.count('BEGIN:VEVENT') == 38
        assert ics_once == ics_twice

    def test_events_sorted_by_start_then_uid(self):
        events = make_builder().convert_rosters_to_events([load_sample()])
        keys = [e.sort_key for e in events]
        assert keys == sorted(keys)

    def test_first_occurrence_wins(self):
        roster = load_sample()
        builder = make_builder()
        with_rate = builder.convert_roster_to_events(roster, pay_rate=100.0)
        merged = builder.convert_rosters_to_events([roster, roster], pay_rate=None)
        assert len(merged) == len(with_rate)
        assert not any('Value:' in e.description for e in merged)

    def test_public_merge(self):
        roster = load_sample()
        builder = make_builder()
        assert len(builder.convert_rosters_to_public_events([roster, roster])) == 28
