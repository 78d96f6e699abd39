"""
iCalendar (RFC 5545) text output for CalendarEvents.

All-day events use DTSTART;VALUE=DATE, timed events UTC 'Z' times.
Events with a duration instead of an end get a DURATION property.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

import pytz

from models.data_models import CalendarEvent

CRLF = '\r\n'
MAX_LINE_OCTETS = 75


def escape_text(value: str) -> str:
    return (value.replace('\\', '\\\\')
                 .replace(';', '\\;')
                 .replace(',', '\\,')
                 .replace('\r\n', '\\n')
                 .replace('\n', '\\n'))


def fold_line(line: str) -> List[str]:
    """Split a content line into <=75-octet chunks; continuations start with a space."""
    folded = []
    current = ''
    current_octets = 0
    limit = MAX_LINE_OCTETS
    for char in line:
        size = len(char.encode('utf-8'))
        if current_octets + size > limit:
            folded.append(current)
            current = ' '
            current_octets = 1
        current += char
        current_octets += size
    folded.append(current)
    return folded


def format_date_value(parts) -> str:
    return f"{parts[0]:04d}{parts[1]:02d}{parts[2]:02d}"


def format_datetime_value(parts) -> str:
    return f"{parts[0]:04d}{parts[1]:02d}{parts[2]:02d}T{parts[3]:02d}{parts[4]:02d}00Z"


def format_duration(duration: Dict[str, int]) -> str:
    """{'days': 1} -> 'P1D', {'hours': 8} -> 'PT8H'"""
    value = 'P'
    if duration.get('weeks'):
        value += f"{duration['weeks']}W"
    if duration.get('days'):
        value += f"{duration['days']}D"
    clock = ''
    if duration.get('hours'):
        clock += f"{duration['hours']}H"
    if duration.get('minutes'):
        clock += f"{duration['minutes']}M"
    if clock:
        value += 'T' + clock
    return value if value != 'P' else 'PT0M'


def _time_property(name: str, parts) -> str:
    if len(parts) == 3:
        return f"{name};VALUE=DATE:{format_date_value(parts)}"
    return f"{name}:{format_datetime_value(parts)}"


def event_lines(event: CalendarEvent, dtstamp: str) -> List[str]:
    lines = [
        'BEGIN:VEVENT',
        f"UID:{event.uid}",
        f"DTSTAMP:{dtstamp}",
        _time_property('DTSTART', event.start),
    ]
    if event.end is not None:
        lines.append(_time_property('DTEND', event.end))
    elif event.duration:
        lines.append(f"DURATION:{format_duration(event.duration)}")
    lines.append(f"SUMMARY:{escape_text(event.title)}")
    if event.description:
        lines.append(f"DESCRIPTION:{escape_text(event.description)}")
    if event.transp is not None:
        lines.append(f"TRANSP:{event.transp.value}")
    if event.busy_status is not None:
        lines.append(f"X-MICROSOFT-CDO-BUSYSTATUS:{event.busy_status.value}")
    lines.append('END:VEVENT')
    return lines


def serialize_calendar(events: Iterable[CalendarEvent], cal_name: Optional[str] = None,
                       product_id: str = '-//Roster Calendar//Roster Calendar Service//EN',
                       dtstamp: Optional[datetime] = None) -> str:
    stamp = (dtstamp or datetime.now(pytz.utc)).astimezone(pytz.utc).strftime('%Y%m%dT%H%M%SZ')

    lines = [
        'BEGIN:VCALENDAR',
        'VERSION:2.0',
        f"PRODID:{product_id}",
        'CALSCALE:GREGORIAN',
        'METHOD:PUBLISH',
    ]
    if cal_name:
        lines.append(f"X-WR-CALNAME:{escape_text(cal_name)}")
    for event in events:
        lines.extend(event_lines(event, stamp))
    lines.append('END:VCALENDAR')

    folded = []
    for line in lines:
        folded.extend(fold_line(line))
    return CRLF.join(folded) + CRLF
