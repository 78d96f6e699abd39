# roster_parser.py - webCIS Roster Text Parser

"""
Roster Parser - Extract duties from airline roster text reports

Input is the monthly roster dump (plain text, fixed-width-ish columns):

    Name    : DOE J              Staff No: 000000     Category: F/O-B737
    Base    : PER                Line    : PLH        Bid Period 3735
    Date   Duty(Role)   Service    S-On S-Of  Duty  Credit Port Code
    29 Mon 8001A1       940/950    0615 1800 11:45   9:15  PER
    ...
    Available Date/Time this BP : 29Dec25 0000 to 25Jan26 2359
    Pattern Details
     29Dec       940  PER 0715 BNE 1320
     Rpt 0615 Rls 1800 PER
    8001A1 DATED 29Dec25

The parser is a pipeline of pure functions over the list of lines:
header scan -> entry scan -> summary scan -> pattern details scan ->
period inference -> month/year assignment.  Malformed input never raises;
unrecognised lines are dropped and missing fields stay None.
"""

import logging
import re
from dataclasses import dataclass, replace
from datetime import date
from typing import List, Dict, Optional, Tuple, NamedTuple

from models.data_models import (
    DutyType, Employee, RosterEntry, FlightLeg, DutyPattern, RosterSummary, Roster,
)
from parsers.parameters import ParserParameters
from parsers.calendar_math import (
    parse_day_month, parse_roster_date, next_month, is_month_rollover,
    anchor_for_table_start, resolve_leg_year,
)

logger = logging.getLogger(__name__)


# ============================================================================
# FLIGHT NUMBER NORMALISATION
# ============================================================================

DEFAULT_CARRIER = 'QF'


def normalize_flight_number(flight_number: Optional[str]) -> Optional[str]:
    """'775' -> 'QF775'; already-prefixed values pass through unchanged."""
    if flight_number is None:
        return None
    value = flight_number.strip().upper()
    if value.isdigit():
        return f"{DEFAULT_CARRIER}{value}"
    return value


def normalize_service(service: Optional[str]) -> Optional[str]:
    """'940/941' -> 'QF940/QF941'"""
    if not service:
        return service
    parts = [normalize_flight_number(p) for p in service.split('/') if p.strip()]
    return '/'.join(parts)


# ============================================================================
# DUTY CLASSIFICATION (ordered, first match wins)
# ============================================================================

DUTY_CODE_TABLE: Tuple[Tuple[re.Pattern, DutyType], ...] = (
    (re.compile(r'^D/?O$'), DutyType.DAY_OFF),
    (re.compile(r'^AV$'), DutyType.AVAILABLE_DAY),
    (re.compile(r'^A/?L$'), DutyType.ANNUAL_LEAVE),
    (re.compile(r'^P/?L$'), DutyType.PERSONAL_LEAVE),
    (re.compile(r'^BLK$|^BLANK$'), DutyType.BLANK_DAY),
    (re.compile(r'^EP\d*$'), DutyType.EMERGENCY_PROCEDURES),
    (re.compile(r'^SIM\w*$'), DutyType.SIMULATOR),
    (re.compile(r'^R\d+$'), DutyType.RESERVE),
)


def classify_duty_code(duty_code: Optional[str]) -> DutyType:
    if not duty_code:
        return DutyType.FLIGHT
    code = duty_code.strip().upper()
    for pattern, duty_type in DUTY_CODE_TABLE:
        if pattern.match(code):
            return duty_type
    return DutyType.FLIGHT


# Service token prefixes
_SIMULATOR_SERVICE_RE = re.compile(r'^&\S*$')
_ALT_PAX_SERVICE_RE = re.compile(r'^A\d{3,4}(?:/\d{1,4})*$')
_PASSIVE_SERVICE_RE = re.compile(r'^P\d+(?:/\d+)*$')
_FLIGHT_SERVICE_RE = re.compile(r'^(?:[A-Z]{2})?\d{1,4}[A-Z]?(?:/(?:[A-Z]{2})?\d{1,4}[A-Z]?)*$')


class ServiceToken(NamedTuple):
    service: Optional[str]
    passive: bool
    simulator: bool


def classify_service(token: Optional[str]) -> ServiceToken:
    """Split a service column token into (normalised service, passive, simulator)."""
    if not token:
        return ServiceToken(None, False, False)
    if _SIMULATOR_SERVICE_RE.match(token):
        return ServiceToken(token[1:] or None, False, True)
    if _ALT_PAX_SERVICE_RE.match(token):
        return ServiceToken(normalize_service(token[1:]), True, False)
    if _PASSIVE_SERVICE_RE.match(token):
        return ServiceToken(normalize_service(token[1:]), True, False)
    return ServiceToken(normalize_service(token), False, False)


def _looks_like_service(token: str, strict: bool) -> bool:
    if _SIMULATOR_SERVICE_RE.match(token) or _ALT_PAX_SERVICE_RE.match(token) \
            or _PASSIVE_SERVICE_RE.match(token):
        return True
    if strict:
        # Without a time column, only bare numbers count (award codes look like 'AW01')
        return bool(re.match(r'^\d{1,4}(?:/\d{1,4})*$', token))
    return bool(_FLIGHT_SERVICE_RE.match(token))


# ============================================================================
# HEADER SCAN
# ============================================================================

HEADER_FIELDS = (
    ('name', re.compile(r'Name\s*:\s*(.+?)(?:\s{2,}|$)')),
    ('staff_no', re.compile(r'Staff No\s*:\s*(\d+)')),
    ('category', re.compile(r'Category\s*:\s*(.+?)(?:\s{2,}|$)')),
    ('base', re.compile(r'Base\s*:\s*([A-Z]{3})\b')),
    ('line', re.compile(r'\bLine\s*:\s*(\S+)')),
)
BID_PERIOD_RE = re.compile(r'Bid Period\s*:?\s*(\d+)')


class HeaderScan(NamedTuple):
    employee: Employee
    bid_period: Optional[str]
    table_start: Optional[int]   # index of the 'Date ... Duty(Role)' line


def is_table_header(line: str) -> bool:
    return 'Date' in line and 'Duty(Role)' in line


def scan_header(lines: List[str]) -> HeaderScan:
    fields: Dict[str, str] = {}
    bid_period = None
    table_start = None

    for idx, line in enumerate(lines):
        if is_table_header(line):
            table_start = idx
            break
        for name, pattern in HEADER_FIELDS:
            if name in fields:
                continue
            match = pattern.search(line)
            if match:
                fields[name] = match.group(1).strip()
        if bid_period is None:
            match = BID_PERIOD_RE.search(line)
            if match:
                bid_period = match.group(1)

    return HeaderScan(Employee(**fields), bid_period, table_start)


# ============================================================================
# ENTRY SCAN (main duty table)
# ============================================================================

TABLE_TERMINATORS = ('Total Duty Hours', '*** End of Report ***')
WEEKDAYS = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')

_ROW_RE = re.compile(r'^\s*(\d{1,2})\s+([A-Z][a-z]{2})\b(.*)$')
_HHMM_RE = re.compile(r'^\d{4}$')
_HOURS_RE = re.compile(r'^\d{1,3}:\d{2}$')
_PORT_RE = re.compile(r'^[A-Z]{3}$')
_AWARD_CODE_RE = re.compile(r'^[A-Z]{2}\d{2}$')


def _find_time_pair(fields: List[str]) -> Optional[int]:
    """Index of the sign-on token: last adjacent HHMM pair before any H:MM token."""
    limit = next((i for i, t in enumerate(fields) if _HOURS_RE.match(t)), len(fields))
    pair = None
    for i in range(min(limit, len(fields)) - 1):
        if _HHMM_RE.match(fields[i]) and _HHMM_RE.match(fields[i + 1]):
            pair = i
    return pair


def parse_row_fields(fields: List[str]) -> Dict[str, Optional[str]]:
    """
    Pull service / times / hours / port / award code out of the tokens
    following the duty code.  Columns are identified by shape, not offset.
    """
    result: Dict[str, Optional[str]] = {
        'service': None, 'sign_on': None, 'sign_off': None,
        'duty_hours': None, 'credit_hours': None, 'port': None, 'code': None,
    }
    if not fields:
        return result

    pair = _find_time_pair(fields)
    if pair is not None:
        result['sign_on'], result['sign_off'] = fields[pair], fields[pair + 1]
        before = fields[:pair]
        after = fields[pair + 2:]
    else:
        before = []
        after = fields

    service_idx = None
    if before:
        if _looks_like_service(before[0], strict=False):
            result['service'] = before[0]
    elif after and _looks_like_service(after[0], strict=True):
        result['service'] = after[0]
        service_idx = 0

    hours = [t for t in after if _HOURS_RE.match(t)]
    if hours:
        result['duty_hours'] = hours[0]
    if len(hours) > 1:
        result['credit_hours'] = hours[1]

    for i, token in enumerate(after):
        if i == service_idx:
            continue
        if result['port'] is None and _PORT_RE.match(token):
            result['port'] = token
        elif _AWARD_CODE_RE.match(token):
            result['code'] = token

    return result


def parse_entry_row(line: str, previous: Optional[RosterEntry],
                    params: ParserParameters) -> Optional[RosterEntry]:
    """One table row -> RosterEntry, or None if the line is not a row."""
    match = _ROW_RE.match(line)
    if not match or match.group(2) not in WEEKDAYS:
        return None

    day = int(match.group(1))
    if not 1 <= day <= 31:
        return None
    day_of_week = match.group(2)
    rest = match.group(3)
    tokens = rest.split()

    if not tokens:
        return RosterEntry(day=day, day_of_week=day_of_week, duty_type=DutyType.BLANK_DAY)

    indent = len(rest) - len(rest.lstrip(' '))
    if indent >= params.continuation_indent:
        # Blank duty-code column: another leg of the duty above
        carried = previous if previous is not None and previous.duty_type in (
            DutyType.FLIGHT, DutyType.SIMULATOR) else None
        duty_code = carried.duty_code if carried else None
        duty_type = carried.duty_type if carried else DutyType.FLIGHT
        fields = tokens
    else:
        duty_code = tokens[0]
        duty_type = classify_duty_code(duty_code)
        fields = tokens[1:]

    parsed = parse_row_fields(fields)
    service = classify_service(parsed['service'])
    if service.simulator and duty_type == DutyType.FLIGHT:
        duty_type = DutyType.SIMULATOR

    credit_hours = parsed['credit_hours']
    if duty_type == DutyType.RESERVE and not credit_hours:
        credit_hours = params.reserve_default_credit

    return RosterEntry(
        day=day,
        day_of_week=day_of_week,
        duty_type=duty_type,
        duty_code=duty_code,
        service=service.service,
        sign_on=parsed['sign_on'],
        sign_off=parsed['sign_off'],
        duty_hours=parsed['duty_hours'],
        credit_hours=credit_hours,
        port=parsed['port'],
        passive=service.passive,
        code=parsed['code'],
    )


def scan_entries(lines: List[str], table_start: Optional[int],
                 params: ParserParameters) -> List[RosterEntry]:
    if table_start is None:
        return []

    entries: List[RosterEntry] = []
    for line in lines[table_start + 1:]:
        if any(marker in line for marker in TABLE_TERMINATORS):
            break
        entry = parse_entry_row(line, entries[-1] if entries else None, params)
        if entry is not None:
            entries.append(entry)
    return entries


# ============================================================================
# SUMMARY SCAN
# ============================================================================

_SUMMARY_DATE_RE = re.compile(r'\b\d{2}[A-Z][a-z]{2}\d{2}\b')


def scan_summary(lines: List[str], bid_period: Optional[str] = None) -> RosterSummary:
    summary = RosterSummary(bid_period=bid_period)
    for line in lines:
        if 'Available Date/Time this' not in line or 'BP' not in line:
            continue
        dates = [parse_roster_date(tok) for tok in _SUMMARY_DATE_RE.findall(line)]
        dates = [d for d in dates if d is not None]
        if len(dates) >= 2:
            summary.period_start, summary.period_end = dates[0], dates[1]
            break
    return summary


# ============================================================================
# PATTERN DETAILS SCAN
# ============================================================================

PATTERN_SECTION_MARKER = 'Pattern Details'

_LEG_RE = re.compile(
    r'^\s*(\d{1,2}[A-Z][a-z]{2})\s+(?:(P)\s+)?([A-Z]{0,2}\d{1,4}[A-Z]?)\s+'
    r'([A-Z]{3})\s+(\d{4})\s+([A-Z]{3})\s+(\d{4})\b'
)
_REPORT_RELEASE_RE = re.compile(r'\bRpt\s+(\d{4})\s+Rls\s+(\d{4})(.*)$')
_DATED_RE = re.compile(r'^\s*(\S+)\s+DATED\s+(\d{1,2}[A-Z][a-z]{2}(?:\d{2})?)\b')
_AIRPORT_TOKEN_RE = re.compile(r'\b[A-Z]{3}\b')


def find_pattern_section(lines: List[str]) -> Optional[Tuple[int, int]]:
    """(start, end) line indices of the Pattern Details body, if present."""
    start = next((i for i, line in enumerate(lines) if PATTERN_SECTION_MARKER in line), None)
    if start is None:
        return None
    end = len(lines)
    for i in range(start + 1, len(lines)):
        if '*** End of Report ***' in lines[i]:
            end = i
            break
    return start + 1, end


def parse_leg_row(line: str, tracker: Tuple[int, int]) -> Optional[Tuple[FlightLeg, Tuple[int, int]]]:
    match = _LEG_RE.match(line)
    if not match:
        return None
    day_month = parse_day_month(match.group(1))
    if day_month is None:
        return None
    day, month = day_month
    year, tracker = resolve_leg_year(month, tracker)
    try:
        leg_date = date(year, month, day)
    except ValueError:
        return None

    flight = match.group(3)
    passive = match.group(2) is not None
    if re.match(r'^[AP]\d+$', flight):
        passive = True
        flight = flight[1:]

    leg = FlightLeg(
        date=leg_date,
        flight_number=normalize_flight_number(flight),
        depart_port=match.group(4),
        depart_time=match.group(5),
        arrive_port=match.group(6),
        arrive_time=match.group(7),
        passive=passive,
    )
    return leg, tracker


def _close_duty_period(legs: List[FlightLeg], report_time: Optional[str] = None,
                       release_time: Optional[str] = None,
                       release_port: Optional[str] = None) -> DutyPattern:
    return DutyPattern(
        dated=legs[0].date if legs else None,
        report_time=report_time,
        report_port=legs[0].depart_port if legs else None,
        release_time=release_time,
        release_port=release_port or (legs[-1].arrive_port if legs else None),
        legs=list(legs),
    )


@dataclass
class PatternScan:
    flights: List[FlightLeg]
    duty_patterns: List[DutyPattern]


def scan_pattern_details(lines: List[str], anchor: Optional[date],
                         today: Optional[date] = None) -> PatternScan:
    """
    Parse the Pattern Details section.

    Legs accumulate until a 'Rpt HHMM Rls HHMM' line closes them into a duty
    period; a '<CODE> DATED <date>' line names and flushes the pending duty
    periods.  Leg years come from the block's DATED date when it carries a
    year, else from a running tracker seeded by `anchor` (or today).
    """
    bounds = find_pattern_section(lines)
    if bounds is None:
        return PatternScan([], [])
    start, end = bounds
    section = lines[start:end]

    seed = anchor or today or date.today()
    tracker = (seed.year, seed.month)

    flights: List[FlightLeg] = []
    duty_patterns: List[DutyPattern] = []
    pending_legs: List[FlightLeg] = []
    pending: List[DutyPattern] = []

    dated_rows = [i for i, line in enumerate(section) if _DATED_RE.match(line)]
    block_start = 0
    for block_end in dated_rows + [len(section)]:
        dated_match = _DATED_RE.match(section[block_end]) if block_end < len(section) else None
        block_dated = None
        if dated_match:
            block_dated = parse_roster_date(dated_match.group(2))
            if block_dated is not None:
                tracker = (block_dated.year, block_dated.month)

        for line in section[block_start:block_end]:
            leg_result = parse_leg_row(line, tracker)
            if leg_result is not None:
                leg, tracker = leg_result
                pending_legs.append(leg)
                flights.append(leg)
                continue
            rpt = _REPORT_RELEASE_RE.search(line)
            if rpt:
                ports = _AIRPORT_TOKEN_RE.findall(rpt.group(3))
                pending.append(_close_duty_period(
                    pending_legs, rpt.group(1), rpt.group(2), ports[-1] if ports else None,
                ))
                pending_legs = []

        if pending_legs:
            pending.append(_close_duty_period(pending_legs))
            pending_legs = []

        if dated_match:
            if block_dated is None:
                day_month = parse_day_month(dated_match.group(2))
                if day_month:
                    year, _ = resolve_leg_year(day_month[1], tracker)
                    try:
                        block_dated = date(year, day_month[1], day_month[0])
                    except ValueError:
                        block_dated = None
            code = dated_match.group(1)
            for pattern in pending:
                pattern.duty_code = code
                if pattern.dated is None:
                    pattern.dated = block_dated
        duty_patterns.extend(pending)
        pending = []
        block_start = block_end + 1

    logger.debug(f"Pattern details: {len(flights)} legs, {len(duty_patterns)} duty periods")
    return PatternScan(flights, duty_patterns)


# ============================================================================
# PERIOD INFERENCE & MONTH/YEAR ASSIGNMENT
# ============================================================================

class RosterPeriod(NamedTuple):
    start_year: int
    start_month: int
    end_year: int
    end_month: int


def _all_leg_dates(roster: Roster) -> List[date]:
    dates = [leg.date for leg in roster.flights if leg.date]
    for pattern in roster.duty_patterns:
        dates.extend(leg.date for leg in pattern.legs if leg.date)
        if pattern.dated:
            dates.append(pattern.dated)
    return dates


def infer_period_start_from_dated_legs(roster: Roster) -> Optional[Tuple[int, int]]:
    """(year, month) of the table start, from the earliest dated leg."""
    dates = _all_leg_dates(roster)
    if not dates:
        return None
    first_day = roster.entries[0].day if roster.entries else None
    return anchor_for_table_start(first_day, min(dates))


def _walk_months(entries: List[RosterEntry], year: int, month: int,
                 threshold: int) -> List[Tuple[int, int]]:
    placed = []
    previous_day = None
    for entry in entries:
        if is_month_rollover(previous_day, entry.day, threshold):
            year, month = next_month(year, month)
        placed.append((year, month))
        previous_day = entry.day
    return placed


def get_roster_period(roster: Roster, today: Optional[date] = None,
                      params: Optional[ParserParameters] = None) -> RosterPeriod:
    """
    Calendar months the duty table covers.

    Priority: summary period, then earliest dated flight leg, then today.
    """
    params = params or ParserParameters()
    summary = roster.summary

    if summary.period_start:
        start = (summary.period_start.year, summary.period_start.month)
    else:
        start = infer_period_start_from_dated_legs(roster)
        if start is None:
            today = today or date.today()
            start = (today.year, today.month)

    if summary.period_start and summary.period_end:
        end = (summary.period_end.year, summary.period_end.month)
    else:
        placed = _walk_months(roster.entries, start[0], start[1], params.rollover_threshold_days)
        end = placed[-1] if placed else start

    return RosterPeriod(start[0], start[1], end[0], end[1])


def assign_month_year_to_entries(entries: List[RosterEntry], start_year: int, start_month: int,
                                 params: Optional[ParserParameters] = None) -> List[RosterEntry]:
    """Copies of `entries` with month/year set, walking forward from the period start."""
    params = params or ParserParameters()
    placed = _walk_months(entries, start_year, start_month, params.rollover_threshold_days)
    return [replace(entry, year=year, month=month) for entry, (year, month) in zip(entries, placed)]


# ============================================================================
# PIPELINE
# ============================================================================

def parse_roster_text(text: str, params: Optional[ParserParameters] = None,
                      today: Optional[date] = None) -> Roster:
    params = params or ParserParameters()
    lines = (text or '').splitlines()

    header = scan_header(lines)
    entries = scan_entries(lines, header.table_start, params)
    summary = scan_summary(lines, header.bid_period)
    patterns = scan_pattern_details(lines, summary.period_start, today)

    roster = Roster(
        employee=header.employee,
        entries=entries,
        flights=patterns.flights,
        duty_patterns=patterns.duty_patterns,
        summary=summary,
    )
    period = get_roster_period(roster, today, params)
    roster = replace(
        roster,
        entries=assign_month_year_to_entries(entries, period.start_year, period.start_month, params),
    )

    logger.info(
        f"Parsed roster for {header.employee.staff_no or 'unknown staff'}: "
        f"{len(roster.entries)} entries, {len(roster.flights)} legs, "
        f"{len(roster.duty_patterns)} duty periods"
    )
    return roster


class RosterTextParser:
    """
    Parse webCIS roster text into a Roster.

    Thin holder for parameters around parse_roster_text(); keeps no scan
    state between calls.
    """

    def __init__(self, params: Optional[ParserParameters] = None,
                 today: Optional[date] = None):
        self.params = params or ParserParameters()
        self.today = today

    def parse(self, text: str) -> Roster:
        return parse_roster_text(text, self.params, self.today)
