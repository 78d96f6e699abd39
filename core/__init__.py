"""
Core Roster Calendar Components
===============================

Main exports for roster rendering, storage and change tracking.
"""

from core.parameters import (
    ParserParameters,
    CalendarParameters,
    StoreConfig,
    PilotDirectoryConfig,
    ServiceConfig,
)

from core.timezones import AirportTimezoneLookup
from core.pay_rules import build_pay_line, calculate_paid_minutes, calculate_roster_value
from core.calendar_builder import CalendarEventBuilder, is_duty_type_busy
from core.ics_serializer import serialize_calendar

from core.roster_store import RosterStore, IngestResult, JsonFilePersistence
from core.roster_diff import RosterDiff, diff_rosters, format_diff_as_text
from core.pilot_directory import PilotDirectory

__all__ = [
    # Parameters
    'ParserParameters',
    'CalendarParameters',
    'StoreConfig',
    'PilotDirectoryConfig',
    'ServiceConfig',
    # Rendering
    'AirportTimezoneLookup',
    'build_pay_line',
    'calculate_paid_minutes',
    'calculate_roster_value',
    'CalendarEventBuilder',
    'is_duty_type_busy',
    'serialize_calendar',
    # Storage & changes
    'RosterStore',
    'IngestResult',
    'JsonFilePersistence',
    'RosterDiff',
    'diff_rosters',
    'format_diff_as_text',
    'PilotDirectory',
]
