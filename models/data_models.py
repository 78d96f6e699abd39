"""
data_models.py - Core Data Structures
======================================

Data models for parsed crew rosters, stored roster versions and the
calendar events rendered from them.

Rosters are built once per ingested document and treated as values:
updates produce a new Roster (see dataclasses.replace) rather than
mutating an existing one.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Dict, Any, Tuple
from enum import Enum


# ============================================================================
# ENUMS
# ============================================================================

class DutyType(Enum):
    """Classification of one row of the roster duty table"""
    FLIGHT = "FLIGHT"
    DAY_OFF = "DAY_OFF"
    PERSONAL_LEAVE = "PERSONAL_LEAVE"
    SIMULATOR = "SIMULATOR"
    EMERGENCY_PROCEDURES = "EMERGENCY_PROCEDURES"
    RESERVE = "RESERVE"
    AVAILABLE_DAY = "AVAILABLE_DAY"
    ANNUAL_LEAVE = "ANNUAL_LEAVE"
    BLANK_DAY = "BLANK_DAY"


class BusyStatus(Enum):
    """Free/busy marker for redacted calendar events"""
    BUSY = "BUSY"
    FREE = "FREE"


class Transparency(Enum):
    """iCalendar TRANSP value paired with BusyStatus"""
    OPAQUE = "OPAQUE"
    TRANSPARENT = "TRANSPARENT"


def _date_to_str(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _date_from_str(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


# ============================================================================
# ROSTER MODEL
# ============================================================================

@dataclass
class Employee:
    """Crew member identity block from the roster header"""
    name: Optional[str] = None
    staff_no: Optional[str] = None
    category: Optional[str] = None   # e.g. "F/O-B737"
    base: Optional[str] = None       # Home airport (IATA)
    line: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'staff_no': self.staff_no,
            'category': self.category,
            'base': self.base,
            'line': self.line,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Employee':
        data = data or {}
        return cls(
            name=data.get('name'),
            staff_no=data.get('staff_no'),
            category=data.get('category'),
            base=data.get('base'),
            line=data.get('line'),
        )


@dataclass
class RosterEntry:
    """
    One row of the duty table.

    Month and year are not printed on the row itself; they are assigned
    after period inference (see parsers.roster_parser).
    """
    day: int
    day_of_week: str
    duty_type: DutyType = DutyType.FLIGHT
    duty_code: Optional[str] = None
    service: Optional[str] = None       # "QF940/QF950", simulator id, ...
    sign_on: Optional[str] = None       # HHMM local
    sign_off: Optional[str] = None      # HHMM local
    duty_hours: Optional[str] = None    # H:MM
    credit_hours: Optional[str] = None  # H:MM
    port: Optional[str] = None
    passive: bool = False
    code: Optional[str] = None          # Award code, e.g. "AW01"
    month: Optional[int] = None         # 1-12
    year: Optional[int] = None

    @property
    def date_key(self) -> str:
        """Calendar-day key used by roster diffs, e.g. '29 Mon'"""
        return f"{self.day} {self.day_of_week}"

    @property
    def calendar_date(self) -> Optional[date]:
        if self.month is None or self.year is None:
            return None
        try:
            return date(self.year, self.month, self.day)
        except ValueError:
            return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'day': self.day,
            'day_of_week': self.day_of_week,
            'duty_type': self.duty_type.value,
            'duty_code': self.duty_code,
            'service': self.service,
            'sign_on': self.sign_on,
            'sign_off': self.sign_off,
            'duty_hours': self.duty_hours,
            'credit_hours': self.credit_hours,
            'port': self.port,
            'passive': self.passive,
            'code': self.code,
            'month': self.month,
            'year': self.year,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RosterEntry':
        return cls(
            day=int(data['day']),
            day_of_week=data.get('day_of_week', ''),
            duty_type=DutyType(data.get('duty_type', DutyType.FLIGHT.value)),
            duty_code=data.get('duty_code'),
            service=data.get('service'),
            sign_on=data.get('sign_on'),
            sign_off=data.get('sign_off'),
            duty_hours=data.get('duty_hours'),
            credit_hours=data.get('credit_hours'),
            port=data.get('port'),
            passive=bool(data.get('passive', False)),
            code=data.get('code'),
            month=data.get('month'),
            year=data.get('year'),
        )


@dataclass
class FlightLeg:
    """Single sector from the Pattern Details section (local times)"""
    date: date
    flight_number: str
    depart_port: str
    depart_time: str    # HHMM, departure port local
    arrive_port: str
    arrive_time: str    # HHMM, arrival port local
    passive: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': _date_to_str(self.date),
            'flight_number': self.flight_number,
            'depart_port': self.depart_port,
            'depart_time': self.depart_time,
            'arrive_port': self.arrive_port,
            'arrive_time': self.arrive_time,
            'passive': self.passive,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FlightLeg':
        return cls(
            date=_date_from_str(data['date']),
            flight_number=data['flight_number'],
            depart_port=data['depart_port'],
            depart_time=data['depart_time'],
            arrive_port=data['arrive_port'],
            arrive_time=data['arrive_time'],
            passive=bool(data.get('passive', False)),
        )


@dataclass
class DutyPattern:
    """
    One duty period (report to release) of a pairing.

    A multi-day pairing produces several DutyPatterns sharing the same
    duty_code; the code is only known once the trailing DATED line is read.
    """
    duty_code: Optional[str] = None
    dated: Optional[date] = None
    report_time: Optional[str] = None
    report_port: Optional[str] = None
    release_time: Optional[str] = None
    release_port: Optional[str] = None
    legs: List[FlightLeg] = field(default_factory=list)

    @property
    def start_date(self) -> Optional[date]:
        if self.dated:
            return self.dated
        return self.legs[0].date if self.legs else None

    @property
    def end_date(self) -> Optional[date]:
        if self.legs:
            return self.legs[-1].date
        return self.dated

    def to_dict(self) -> Dict[str, Any]:
        return {
            'duty_code': self.duty_code,
            'dated': _date_to_str(self.dated),
            'report_time': self.report_time,
            'report_port': self.report_port,
            'release_time': self.release_time,
            'release_port': self.release_port,
            'legs': [leg.to_dict() for leg in self.legs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DutyPattern':
        return cls(
            duty_code=data.get('duty_code'),
            dated=_date_from_str(data.get('dated')),
            report_time=data.get('report_time'),
            report_port=data.get('report_port'),
            release_time=data.get('release_time'),
            release_port=data.get('release_port'),
            legs=[FlightLeg.from_dict(leg) for leg in data.get('legs', [])],
        )


@dataclass
class RosterSummary:
    """Bid period identity and date range"""
    bid_period: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'bid_period': self.bid_period,
            'period_start': _date_to_str(self.period_start),
            'period_end': _date_to_str(self.period_end),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'RosterSummary':
        data = data or {}
        return cls(
            bid_period=data.get('bid_period'),
            period_start=_date_from_str(data.get('period_start')),
            period_end=_date_from_str(data.get('period_end')),
        )


@dataclass
class Roster:
    """One parsed roster document"""
    employee: Employee = field(default_factory=Employee)
    entries: List[RosterEntry] = field(default_factory=list)
    flights: List[FlightLeg] = field(default_factory=list)
    duty_patterns: List[DutyPattern] = field(default_factory=list)
    summary: RosterSummary = field(default_factory=RosterSummary)

    # Store metadata (None until the roster has been ingested)
    content_hash: Optional[str] = None
    period_key: Optional[str] = None

    @property
    def has_duty_patterns(self) -> bool:
        return len(self.duty_patterns) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'employee': self.employee.to_dict(),
            'entries': [e.to_dict() for e in self.entries],
            'flights': [f.to_dict() for f in self.flights],
            'duty_patterns': [p.to_dict() for p in self.duty_patterns],
            'summary': self.summary.to_dict(),
            'content_hash': self.content_hash,
            'period_key': self.period_key,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Roster':
        return cls(
            employee=Employee.from_dict(data.get('employee')),
            entries=[RosterEntry.from_dict(e) for e in data.get('entries', [])],
            flights=[FlightLeg.from_dict(f) for f in data.get('flights', [])],
            duty_patterns=[DutyPattern.from_dict(p) for p in data.get('duty_patterns', [])],
            summary=RosterSummary.from_dict(data.get('summary')),
            content_hash=data.get('content_hash'),
            period_key=data.get('period_key'),
        )


@dataclass
class RosterBucket:
    """All stored roster versions for one employee"""
    employee: Employee
    rosters: List[Roster] = field(default_factory=list)
    roster_hashes: set = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'employee': self.employee.to_dict(),
            'rosters': [r.to_dict() for r in self.rosters],
            'roster_hashes': sorted(self.roster_hashes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RosterBucket':
        return cls(
            employee=Employee.from_dict(data.get('employee')),
            rosters=[Roster.from_dict(r) for r in data.get('rosters', [])],
            roster_hashes=set(data.get('roster_hashes', [])),
        )


# ============================================================================
# CALENDAR OUTPUT
# ============================================================================

@dataclass
class CalendarEvent:
    """
    Rendered calendar event.

    start/end are (year, month, day) for all-day events or
    (year, month, day, hour, minute) in UTC for timed events.
    Exactly one of end / duration is set.
    """
    title: str
    start: Tuple[int, ...]
    uid: str
    description: str = ''
    end: Optional[Tuple[int, ...]] = None
    duration: Optional[Dict[str, int]] = None   # {'days': 1} / {'hours': 8}
    cal_name: Optional[str] = None
    busy_status: Optional[BusyStatus] = None
    transp: Optional[Transparency] = None

    @property
    def is_all_day(self) -> bool:
        return len(self.start) == 3

    @property
    def sort_key(self) -> Tuple[Tuple[int, ...], str]:
        return (tuple(self.start), self.uid)
