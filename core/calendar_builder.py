"""
Calendar Event Builder
======================

Converts a parsed Roster into calendar events.

Full calendar:
- one event per duty-table entry (all-day for days off / leave, timed for
  flying, reserve, simulator and EP days)
- when Pattern Details are present they replace the FLIGHT table rows:
  one timed event per duty period (report to release) plus one event per
  flight leg
- one all-day event per multi-day pattern that spends time away from base,
  listing slip ports and flagging long slips (> 30h)

Public calendar: the same timing with everything except Busy/Free removed.

Timed events are in UTC: local wall-clock times are resolved through the
port's (or base's) IANA zone.  An end before its start moves to the next
day (sign-off after midnight).  Events whose times cannot be resolved are
skipped, never raised.
"""

import hashlib
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import pytz

from models.data_models import (
    BusyStatus, CalendarEvent, DutyPattern, DutyType, FlightLeg, Roster, RosterEntry,
    Transparency,
)
from core.parameters import CalendarParameters
from core.pay_rules import (
    calculate_paid_minutes, format_minutes, format_pay_line, format_value_line,
    parse_hours_to_minutes,
)
from core.timezones import AirportTimezoneLookup
from core.ics_serializer import serialize_calendar
from parsers.roster_parser import assign_month_year_to_entries, get_roster_period

logger = logging.getLogger(__name__)

TimezoneLookup = Callable[[Optional[str]], Optional[str]]

ALL_DAY_TITLES = {
    DutyType.DAY_OFF: 'Day Off',
    DutyType.AVAILABLE_DAY: 'Available Day',
    DutyType.ANNUAL_LEAVE: 'Annual Leave',
    DutyType.BLANK_DAY: 'Blank Day',
}

TIMED_DUTY_TYPES = (
    DutyType.FLIGHT, DutyType.RESERVE, DutyType.SIMULATOR, DutyType.EMERGENCY_PROCEDURES,
)

BUSY_DUTY_TYPES = frozenset({
    DutyType.FLIGHT, DutyType.RESERVE, DutyType.SIMULATOR,
    DutyType.EMERGENCY_PROCEDURES, DutyType.PERSONAL_LEAVE,
})


def is_duty_type_busy(duty_type: DutyType) -> bool:
    return duty_type in BUSY_DUTY_TYPES


# ============================================================================
# TIME HELPERS
# ============================================================================

def parse_time(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """'0615' (optionally '0615+1') -> (6, 15)"""
    if not value:
        return None
    raw = value.strip().split('+')[0]
    if len(raw) != 4 or not raw.isdigit():
        return None
    hour, minute = int(raw[:2]), int(raw[2:])
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def local_to_utc(day: date, hhmm: Tuple[int, int], zone: str) -> Optional[datetime]:
    try:
        tz = pytz.timezone(zone)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone '{zone}'")
        return None
    local = tz.localize(datetime.combine(day, time(hhmm[0], hhmm[1])))
    return local.astimezone(pytz.utc)


def utc_tuple(moment: datetime) -> Tuple[int, int, int, int, int]:
    return (moment.year, moment.month, moment.day, moment.hour, moment.minute)


def date_tuple(day: date) -> Tuple[int, int, int]:
    return (day.year, day.month, day.day)


def _local_window(day: date, start: Tuple[int, int], end: Optional[Tuple[int, int]],
                  start_zone: str, end_zone: str) -> Optional[Tuple[datetime, Optional[datetime]]]:
    start_utc = local_to_utc(day, start, start_zone)
    if start_utc is None:
        return None
    if end is None:
        return start_utc, None
    end_utc = local_to_utc(day, end, end_zone)
    if end_utc is None:
        return None
    if end_utc < start_utc:
        end_utc = local_to_utc(day + timedelta(days=1), end, end_zone)
    return start_utc, end_utc


# ============================================================================
# UIDS
# ============================================================================

def stable_uid_for_entry(entry: RosterEntry, base: Optional[str],
                         domain: str = 'roster-calendar', suffix: str = '') -> str:
    """Content-derived UID: identical entries always render the same UID."""
    payload = {
        'year': entry.year,
        'month': entry.month,
        'day': entry.day,
        'dutyType': entry.duty_type.value,
        'dutyCode': entry.duty_code,
        'service': entry.service,
        'port': entry.port,
        'signOn': entry.sign_on,
        'signOff': entry.sign_off,
        'passive': entry.passive,
        'base': base,
    }
    digest = hashlib.sha1(json.dumps(payload, separators=(',', ':')).encode('utf-8')).hexdigest()[:16]
    return f"{entry.year}-{entry.month}-{entry.day}-{digest}{suffix}@{domain}"


# ============================================================================
# DUTY WINDOWS
# ============================================================================

@dataclass
class DutyWindow:
    """Report/release of one duty period resolved to UTC"""
    pattern: DutyPattern
    start_utc: datetime
    end_utc: datetime
    report_port: Optional[str]
    release_port: Optional[str]
    report_zone: str
    release_zone: str
    start_local_date: date
    end_local_date: date

    @property
    def duration_minutes(self) -> int:
        return int(round((self.end_utc - self.start_utc).total_seconds() / 60))


@dataclass
class EventTiming:
    start: Tuple[int, ...]
    end: Optional[Tuple[int, ...]] = None
    duration: Optional[Dict[str, int]] = None


def build_flight_entry_index(entries: Iterable[RosterEntry]) -> Dict[Tuple, RosterEntry]:
    """(year, month, day, duty_code) -> entry, preferring rows with hours"""
    index: Dict[Tuple, RosterEntry] = {}
    for entry in entries:
        if not entry.duty_code or entry.year is None or entry.month is None:
            continue
        key = (entry.year, entry.month, entry.day, entry.duty_code)
        existing = index.get(key)
        has_hours = bool(entry.duty_hours or entry.credit_hours)
        if existing is None or (has_hours and not (existing.duty_hours or existing.credit_hours)):
            index[key] = entry
    return index


def merge_events(event_lists: Iterable[List[CalendarEvent]]) -> List[CalendarEvent]:
    """Flatten, drop repeated UIDs (first wins), sort by (start, uid)."""
    seen = set()
    merged: List[CalendarEvent] = []
    for events in event_lists:
        for event in events:
            if event.uid in seen:
                continue
            seen.add(event.uid)
            merged.append(event)
    merged.sort(key=lambda e: e.sort_key)
    return merged


# ============================================================================
# BUILDER
# ============================================================================

class CalendarEventBuilder:
    """
    Roster -> CalendarEvents.

    Args:
        timezone_lookup: callable port -> IANA zone (None when unknown).
            Defaults to AirportTimezoneLookup.
        params: CalendarParameters
    """

    def __init__(self, timezone_lookup: Optional[TimezoneLookup] = None,
                 params: Optional[CalendarParameters] = None):
        self.params = params or CalendarParameters()
        self.timezone_lookup = timezone_lookup or AirportTimezoneLookup(
            default_timezone=self.params.default_timezone)

    def zone_for(self, *ports: Optional[str]) -> str:
        """First port that resolves to a zone, else the default zone."""
        for port in ports:
            if port:
                zone = self.timezone_lookup(port)
                if zone:
                    return zone
        return self.params.default_timezone

    # ------------------------------------------------------------------
    # Table entries
    # ------------------------------------------------------------------

    def _placed_entries(self, roster: Roster) -> List[RosterEntry]:
        if all(e.month is not None and e.year is not None for e in roster.entries):
            return roster.entries
        period = get_roster_period(roster)
        return assign_month_year_to_entries(roster.entries, period.start_year, period.start_month)

    def entry_timing(self, entry: RosterEntry, zone: str) -> Optional[EventTiming]:
        day = entry.calendar_date
        if day is None:
            return None

        if entry.duty_type in ALL_DAY_TITLES:
            return EventTiming(start=date_tuple(day), duration={'days': 1})

        if entry.duty_type == DutyType.PERSONAL_LEAVE:
            start = local_to_utc(day, self.params.personal_leave_start, zone)
            if start is None:
                return None
            return EventTiming(start=utc_tuple(start),
                               duration={'hours': self.params.personal_leave_hours})

        # Timed duty
        if entry.sign_on is None:
            return EventTiming(start=date_tuple(day), duration={'days': 1})
        sign_on = parse_time(entry.sign_on)
        if sign_on is None:
            return None
        sign_off = None
        if entry.sign_off is not None:
            sign_off = parse_time(entry.sign_off)
            if sign_off is None:
                return None
        window = _local_window(day, sign_on, sign_off, zone, zone)
        if window is None:
            return None
        start_utc, end_utc = window
        if end_utc is None:
            return EventTiming(start=utc_tuple(start_utc),
                               duration={'hours': self.params.default_duty_hours})
        return EventTiming(start=utc_tuple(start_utc), end=utc_tuple(end_utc))

    def _entry_title(self, entry: RosterEntry) -> str:
        if entry.duty_type in ALL_DAY_TITLES:
            return ALL_DAY_TITLES[entry.duty_type]
        code = entry.duty_code or ''
        if entry.duty_type == DutyType.FLIGHT:
            title = f"Duty: {code or 'Flight Duty'}"
            if entry.service:
                title += f" - {'PAX ' if entry.passive else ''}{entry.service}"
            return title
        if entry.duty_type == DutyType.RESERVE:
            return f"Reserve Duty: {code}"
        if entry.duty_type == DutyType.SIMULATOR:
            return f"Simulator: {code}" + (f" - {entry.service}" if entry.service else '')
        if entry.duty_type == DutyType.EMERGENCY_PROCEDURES:
            return f"Emergency Procedures: {code}"
        if entry.duty_type == DutyType.PERSONAL_LEAVE:
            return 'Personal Leave'
        return code or 'Duty'

    def _entry_description(self, entry: RosterEntry, pay_rate: Optional[float]) -> List[str]:
        lines = []
        if entry.duty_code:
            lines.append(f"Duty: {entry.duty_code}")
        if entry.service:
            label = 'Flights' if '/' in entry.service else 'Flight'
            if entry.duty_type == DutyType.SIMULATOR:
                label = 'Session'
            lines.append(f"{label}: {entry.service}")
        if entry.passive:
            lines.append('Type: Passive (Positioning)')
        if entry.sign_on:
            lines.append(f"Sign On: {entry.sign_on}")
        if entry.sign_off:
            lines.append(f"Sign Off: {entry.sign_off}")
        if entry.duty_hours:
            lines.append(f"Duty Hours: {entry.duty_hours}")
        if entry.credit_hours:
            lines.append(f"Credit Hours: {entry.credit_hours}")
        if entry.duty_type == DutyType.FLIGHT:
            lines.extend(self._pay_lines(
                parse_hours_to_minutes(entry.duty_hours),
                parse_hours_to_minutes(entry.credit_hours),
                pay_rate,
            ))
        if entry.port:
            lines.append(f"Port: {entry.port}")
        return lines

    def _pay_lines(self, duty_minutes: Optional[int], credit_minutes: Optional[int],
                   pay_rate: Optional[float]) -> List[str]:
        if duty_minutes is None:
            return []
        paid = calculate_paid_minutes(duty_minutes, credit_minutes, self.params.dpc_ratio)
        lines = [format_pay_line(paid)]
        if pay_rate is not None:
            lines.append(format_value_line(paid.paid_minutes, pay_rate))
        return lines

    def create_event_from_entry(self, entry: RosterEntry, roster: Roster,
                                pay_rate: Optional[float] = None) -> Optional[CalendarEvent]:
        base = roster.employee.base
        zone = self.zone_for(entry.port, base)
        timing = self.entry_timing(entry, zone)
        if timing is None:
            logger.debug(f"Skipping entry {entry.date_key} {entry.duty_code}: unresolved time")
            return None

        description = '\n'.join(self._entry_description(entry, pay_rate))
        description += f"\n\nTimezone: {zone}"
        return CalendarEvent(
            title=self._entry_title(entry),
            description=description.lstrip('\n'),
            start=timing.start,
            end=timing.end,
            duration=timing.duration,
            uid=stable_uid_for_entry(entry, base, self.params.uid_domain),
            cal_name=self.params.calendar_name,
        )

    # ------------------------------------------------------------------
    # Duty patterns
    # ------------------------------------------------------------------

    def duty_pattern_window(self, pattern: DutyPattern, base: Optional[str]) -> Optional[DutyWindow]:
        start_day = pattern.start_date
        end_day = pattern.end_date or start_day
        report = parse_time(pattern.report_time)
        release = parse_time(pattern.release_time)
        if start_day is None or report is None or release is None:
            return None

        report_port = pattern.report_port or (pattern.legs[0].depart_port if pattern.legs else None) or base
        release_port = pattern.release_port or (pattern.legs[-1].arrive_port if pattern.legs else None) or base
        report_zone = self.zone_for(report_port, base)
        release_zone = self.zone_for(release_port, base)

        start_utc = local_to_utc(start_day, report, report_zone)
        end_utc = local_to_utc(end_day, release, release_zone)
        if start_utc is None or end_utc is None:
            return None
        if end_utc < start_utc:
            end_utc = local_to_utc(end_day + timedelta(days=1), release, release_zone)

        return DutyWindow(
            pattern=pattern,
            start_utc=start_utc,
            end_utc=end_utc,
            report_port=report_port,
            release_port=release_port,
            report_zone=report_zone,
            release_zone=release_zone,
            start_local_date=start_day,
            end_local_date=end_utc.astimezone(pytz.timezone(release_zone)).date(),
        )

    def create_duty_event_from_pattern(self, pattern: DutyPattern, roster: Roster,
                                       entry_index: Dict[Tuple, RosterEntry],
                                       pay_rate: Optional[float] = None) -> Optional[CalendarEvent]:
        window = self.duty_pattern_window(pattern, roster.employee.base)
        if window is None:
            logger.debug(f"Skipping duty period {pattern.duty_code}: unresolved report/release")
            return None

        code = pattern.duty_code
        lines = [
            f"Duty: {code or 'Flight Duty'}",
            f"Report: {window.report_port} {pattern.report_time}",
            f"Release: {window.release_port} {pattern.release_time}",
        ]
        if pattern.legs:
            flights = ', '.join(
                f"{'PAX ' if leg.passive else ''}{leg.flight_number} {leg.depart_port}-{leg.arrive_port}"
                for leg in pattern.legs
            )
            lines.append(f"Flights: {flights}")

        entry = None
        if code:
            day = window.start_local_date
            entry = entry_index.get((day.year, day.month, day.day, code))
        duty_minutes = parse_hours_to_minutes(entry.duty_hours) if entry else None
        if duty_minutes is None:
            duty_minutes = window.duration_minutes
        credit_minutes = parse_hours_to_minutes(entry.credit_hours) if entry else None
        lines.extend(self._pay_lines(duty_minutes, credit_minutes, pay_rate))

        description = '\n'.join(lines)
        description += f"\n\nTimezone (Report): {window.report_zone}\nTimezone (Release): {window.release_zone}"

        # Local report date: two duty periods of one pattern can share a UTC date
        day = window.start_local_date
        return CalendarEvent(
            title=f"Duty: {code or 'Flight Duty'}",
            description=description,
            start=utc_tuple(window.start_utc),
            end=utc_tuple(window.end_utc),
            uid=(f"{day.year}-{day.month}-{day.day}-duty-{code or 'flight'}-"
                 f"{pattern.report_time}@{self.params.uid_domain}"),
            cal_name=self.params.calendar_name,
        )

    def create_all_day_pattern_events(self, roster: Roster) -> List[CalendarEvent]:
        """
        One all-day event per multi-day pattern that leaves base.

        Groups duty periods by code; a group needs at least two duty periods,
        at least one port away from base, and more than one calendar day.
        """
        base = roster.employee.base
        if not base:
            return []

        groups: 'OrderedDict[str, List[DutyWindow]]' = OrderedDict()
        for pattern in roster.duty_patterns:
            if not pattern.duty_code:
                continue
            window = self.duty_pattern_window(pattern, base)
            if window is not None:
                groups.setdefault(pattern.duty_code, []).append(window)

        events = []
        for code, windows in groups.items():
            if len(windows) < 2:
                continue
            windows.sort(key=lambda w: w.start_utc)
            if all(w.report_port == base and w.release_port == base for w in windows):
                continue
            first, last = windows[0], windows[-1]
            start_day = first.start_local_date
            end_day = last.end_local_date
            if start_day >= end_day:
                continue

            # Each slip port once, in order; first gap (and first long gap) per port
            slip_gaps: 'OrderedDict[str, int]' = OrderedDict()
            long_slip_gaps: 'OrderedDict[str, int]' = OrderedDict()
            for current, following in zip(windows, windows[1:]):
                port = current.release_port
                if port and port != base and port == following.report_port:
                    gap = max(0, int(round((following.start_utc - current.end_utc).total_seconds() / 60)))
                    slip_gaps.setdefault(port, gap)
                    if gap > self.params.long_slip_minutes:
                        long_slip_gaps.setdefault(port, gap)
            slips = list(slip_gaps.items())
            long_slips = list(long_slip_gaps.items())

            title = f"Pattern: {code}"
            if slips:
                title += ' ' + ' '.join(port for port, _ in slips)
            if long_slips:
                title += ' (Long Slip)'

            lines = [
                f"Pattern: {code}",
                f"Away from base: {base}",
                f"Start: {first.report_port}",
                f"End: {last.release_port}",
            ]
            if slips:
                lines.append(f"Slip ports: {', '.join(port for port, _ in slips)}")
            if long_slips:
                credit = ', '.join(f"{port} {format_minutes(gap)}" for port, gap in long_slips)
                lines.append(f"Long slip credit: {credit}")
            lines.append('')
            lines.append('Duties:')
            for w in windows:
                lines.append(
                    f"{w.start_local_date.isoformat()}: {w.report_port}-{w.release_port} "
                    f"{w.pattern.report_time}-{w.pattern.release_time}"
                )

            events.append(CalendarEvent(
                title=title,
                description='\n'.join(lines),
                start=date_tuple(start_day),
                end=date_tuple(end_day + timedelta(days=1)),
                uid=f"{start_day.year}-{start_day.month}-{start_day.day}-pattern-{code}@{self.params.uid_domain}",
                cal_name=self.params.calendar_name,
            ))
        return events

    # ------------------------------------------------------------------
    # Flight legs
    # ------------------------------------------------------------------

    def create_event_from_flight_leg(self, leg: FlightLeg, roster: Roster) -> Optional[CalendarEvent]:
        base = roster.employee.base
        depart = parse_time(leg.depart_time)
        arrive = parse_time(leg.arrive_time)
        if leg.date is None or depart is None or arrive is None:
            return None
        depart_zone = self.zone_for(leg.depart_port, base)
        arrive_zone = self.zone_for(leg.arrive_port, base)
        window = _local_window(leg.date, depart, arrive, depart_zone, arrive_zone)
        if window is None:
            return None
        start_utc, end_utc = window

        prefix = 'PAX ' if leg.passive else ''
        lines = [
            f"Flight: {leg.flight_number}",
            f"From: {leg.depart_port}",
            f"To: {leg.arrive_port}",
            f"Depart: {leg.depart_time}",
            f"Arrive: {leg.arrive_time}",
        ]
        if leg.passive:
            lines.append('Type: Passive (Positioning)')
        description = '\n'.join(lines)
        description += f"\n\nTimezone (Depart): {depart_zone}\nTimezone (Arrive): {arrive_zone}"

        return CalendarEvent(
            title=f"{prefix}{leg.flight_number} {leg.depart_port}-{leg.arrive_port} "
                  f"{leg.depart_time}-{leg.arrive_time}",
            description=description,
            start=utc_tuple(start_utc),
            end=utc_tuple(end_utc),
            uid=(f"{leg.date.year}-{leg.date.month}-{leg.date.day}-flight-"
                 f"{leg.flight_number}-{leg.depart_port}-{leg.arrive_port}@{self.params.uid_domain}"),
            cal_name=self.params.calendar_name,
        )

    # ------------------------------------------------------------------
    # Whole rosters
    # ------------------------------------------------------------------

    def convert_roster_to_events(self, roster: Roster,
                                 pay_rate: Optional[float] = None) -> List[CalendarEvent]:
        entries = self._placed_entries(roster)
        has_patterns = roster.has_duty_patterns
        events: List[CalendarEvent] = []

        for entry in entries:
            if has_patterns and entry.duty_type == DutyType.FLIGHT:
                continue
            event = self.create_event_from_entry(entry, roster, pay_rate)
            if event is not None:
                events.append(event)

        if has_patterns:
            index = build_flight_entry_index(entries)
            for pattern in roster.duty_patterns:
                event = self.create_duty_event_from_pattern(pattern, roster, index, pay_rate)
                if event is not None:
                    events.append(event)
            events.extend(self.create_all_day_pattern_events(roster))

        for leg in roster.flights:
            event = self.create_event_from_flight_leg(leg, roster)
            if event is not None:
                events.append(event)

        return events

    def create_public_event_from_entry(self, entry: RosterEntry,
                                       roster: Roster) -> Optional[CalendarEvent]:
        base = roster.employee.base
        timing = self.entry_timing(entry, self.zone_for(entry.port, base))
        if timing is None:
            return None
        busy = is_duty_type_busy(entry.duty_type)
        return CalendarEvent(
            title='Busy' if busy else 'Free',
            description='Unavailable' if busy else 'Available',
            start=timing.start,
            end=timing.end,
            duration=timing.duration,
            uid=stable_uid_for_entry(entry, base, self.params.uid_domain, suffix='-public'),
            cal_name=self.params.public_calendar_name,
            busy_status=BusyStatus.BUSY if busy else BusyStatus.FREE,
            transp=Transparency.OPAQUE if busy else Transparency.TRANSPARENT,
        )

    def convert_roster_to_public_events(self, roster: Roster) -> List[CalendarEvent]:
        events = []
        for entry in self._placed_entries(roster):
            event = self.create_public_event_from_entry(entry, roster)
            if event is not None:
                events.append(event)
        return events

    def convert_rosters_to_events(self, rosters: Iterable[Roster],
                                  pay_rate: Optional[float] = None) -> List[CalendarEvent]:
        return merge_events(self.convert_roster_to_events(r, pay_rate) for r in rosters)

    def convert_rosters_to_public_events(self, rosters: Iterable[Roster]) -> List[CalendarEvent]:
        return merge_events(self.convert_roster_to_public_events(r) for r in rosters)

    # ------------------------------------------------------------------
    # ICS text
    # ------------------------------------------------------------------

    def generate_ics_for_rosters(self, rosters: Iterable[Roster], pay_rate: Optional[float] = None,
                                 dtstamp: Optional[datetime] = None) -> str:
        events = self.convert_rosters_to_events(rosters, pay_rate)
        return serialize_calendar(events, self.params.calendar_name,
                                  self.params.product_id, dtstamp)

    def generate_public_ics_for_rosters(self, rosters: Iterable[Roster],
                                        dtstamp: Optional[datetime] = None) -> str:
        events = self.convert_rosters_to_public_events(rosters)
        return serialize_calendar(events, self.params.public_calendar_name,
                                  self.params.product_id, dtstamp)
