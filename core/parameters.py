"""
Configuration & Parameters for the Roster Calendar Service
==========================================================

All configuration dataclasses:
- ParserParameters: roster text heuristics (defined in parsers.parameters)
- CalendarParameters: event rendering and pay rule constants
- StoreConfig: roster store persistence
- PilotDirectoryConfig: pay rate / email directory file
- ServiceConfig: master configuration container

Environment variables (read by ServiceConfig.from_env):
    ROSTER_PERSIST_ENABLED, ROSTER_PERSIST_PATH,
    ROSTER_PILOT_DB_PATH, ROSTER_PILOT_DB_READONLY,
    ROSTER_AIRPORT_TZ_CSV, ROSTER_DEFAULT_TIMEZONE, ROSTER_LOG_LEVEL
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

import pytz

from parsers.parameters import ParserParameters


def _env_flag(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class CalendarParameters:
    """Event rendering constants"""

    default_timezone: str = 'Australia/Sydney'

    # DPC60: paid time is at least this share of duty time
    dpc_ratio: float = 0.6

    # Slip gap above which a slip is a long slip (strictly greater)
    long_slip_minutes: int = 30 * 60

    # Personal leave is rendered as a fixed local block
    personal_leave_start: Tuple[int, int] = (9, 0)
    personal_leave_hours: int = 8

    # Timed entries with a sign-on but no sign-off
    default_duty_hours: int = 8

    uid_domain: str = 'roster-calendar'
    product_id: str = '-//Roster Calendar//Roster Calendar Service//EN'
    calendar_name: str = 'Roster'
    public_calendar_name: str = 'Roster (Busy/Free)'

    def __post_init__(self):
        assert 0.0 < self.dpc_ratio <= 1.0, "dpc_ratio must be in (0, 1]"
        assert self.long_slip_minutes > 0
        assert self.personal_leave_hours > 0
        assert self.default_timezone in pytz.all_timezones_set, \
            f"unknown timezone {self.default_timezone}"


@dataclass
class StoreConfig:
    """Roster store persistence"""
    persist_enabled: bool = False
    persist_path: str = os.path.join('data', 'roster-store.json')

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'StoreConfig':
        env = os.environ if env is None else env
        return cls(
            persist_enabled=_env_flag(env, 'ROSTER_PERSIST_ENABLED'),
            persist_path=env.get('ROSTER_PERSIST_PATH') or os.path.join('data', 'roster-store.json'),
        )


@dataclass
class PilotDirectoryConfig:
    """Staff number -> email / pay rate file"""
    path: str = os.path.join('data', 'pilot-directory.json')
    readonly: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'PilotDirectoryConfig':
        env = os.environ if env is None else env
        return cls(
            path=env.get('ROSTER_PILOT_DB_PATH') or os.path.join('data', 'pilot-directory.json'),
            readonly=_env_flag(env, 'ROSTER_PILOT_DB_READONLY'),
        )


@dataclass
class ServiceConfig:
    """Master configuration container"""
    parser: ParserParameters = field(default_factory=ParserParameters)
    calendar: CalendarParameters = field(default_factory=CalendarParameters)
    store: StoreConfig = field(default_factory=StoreConfig)
    pilot_directory: PilotDirectoryConfig = field(default_factory=PilotDirectoryConfig)
    airport_timezone_csv: Optional[str] = None
    log_level: str = 'INFO'

    def __post_init__(self):
        assert self.log_level.upper() in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'), \
            f"invalid log level {self.log_level}"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'ServiceConfig':
        env = os.environ if env is None else env
        calendar = CalendarParameters(
            default_timezone=env.get('ROSTER_DEFAULT_TIMEZONE') or 'Australia/Sydney',
        )
        return cls(
            calendar=calendar,
            store=StoreConfig.from_env(env),
            pilot_directory=PilotDirectoryConfig.from_env(env),
            airport_timezone_csv=env.get('ROSTER_AIRPORT_TZ_CSV') or None,
            log_level=(env.get('ROSTER_LOG_LEVEL') or 'INFO').upper(),
        )

    @classmethod
    def in_memory(cls) -> 'ServiceConfig':
        """No persistence, read-only directory; used by tests"""
        return cls(
            store=StoreConfig(persist_enabled=False),
            pilot_directory=PilotDirectoryConfig(readonly=True),
        )
