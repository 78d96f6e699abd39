"""
Roster change notification text.

Builds the subject, body and attachment name of the message sent when a
roster is ingested.  Delivery is left to the caller's mailer.
"""

from typing import Optional

from models.data_models import Roster
from core.roster_diff import diff_rosters, format_diff_as_text


def _bid_period(roster: Roster) -> str:
    return roster.summary.bid_period or 'unknown'


def build_subject(roster: Roster) -> str:
    employee = roster.employee
    name = employee.name or 'Unknown'
    staff_no = employee.staff_no or 'unknown'
    return f"Roster update - {name} ({staff_no}) BP {_bid_period(roster)}"


def build_change_summary(roster: Roster, previous_roster: Optional[Roster],
                         is_new: bool = True, max_lines: int = 50) -> str:
    if not is_new:
        return 'Duplicate roster received (no changes from previous version).'
    if previous_roster is None:
        if roster.summary.bid_period:
            return f"New bid period roster received (BP {roster.summary.bid_period})."
        return 'First roster received (no previous roster on file).'
    return format_diff_as_text(diff_rosters(previous_roster, roster), max_lines)


def build_body(roster_id: str, roster: Roster, previous_roster: Optional[Roster] = None,
               is_new: bool = True) -> str:
    employee = roster.employee
    lines = [
        'Roster Calendar Service',
        '',
        f"Roster ID: {roster_id}",
        f"Name: {employee.name or ''}",
        f"Staff No: {employee.staff_no or ''}",
        f"Base: {employee.base or ''}",
        '',
        'Change summary vs previous roster:',
        build_change_summary(roster, previous_roster, is_new),
    ]
    return '\n'.join(lines)


def build_attachment_name(roster_id: str, roster: Roster) -> str:
    period_key = roster.period_key or f"bp-{_bid_period(roster)}"
    return f"roster-{roster_id}-{period_key}.txt"
