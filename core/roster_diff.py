"""
Day-level comparison of two roster versions.

Each roster is reduced to a map of day key ('29 Mon') to a one-line
summary of that day's duty; days are then added, removed or changed.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from models.data_models import DutyType, Roster, RosterEntry

DAY_OFF_TOKEN = 'D/O'


@dataclass
class DayChange:
    date: str
    was: Optional[str] = None
    now: Optional[str] = None


@dataclass
class RosterDiff:
    staff_no: Optional[str]
    added: List[DayChange] = field(default_factory=list)
    removed: List[DayChange] = field(default_factory=list)
    changed: List[DayChange] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.changed)


def format_entry(entry: RosterEntry) -> str:
    if entry.duty_type == DutyType.DAY_OFF:
        return DAY_OFF_TOKEN
    parts = []
    if entry.duty_code:
        parts.append(entry.duty_code)
    if entry.service:
        parts.append(entry.service)
    if entry.sign_on and entry.sign_off:
        parts.append(f"{entry.sign_on}-{entry.sign_off}")
    if entry.port:
        parts.append(entry.port)
    if entry.code and entry.duty_type != DutyType.FLIGHT:
        parts.append(entry.code)
    return ' '.join(parts)


def build_day_map(roster: Optional[Roster]) -> Dict[str, str]:
    days: Dict[str, str] = {}
    if roster is None:
        return days
    for entry in roster.entries:
        key = entry.date_key
        value = format_entry(entry)
        days[key] = f"{days[key]} | {value}" if key in days else value
    return days


def sort_date_keys(keys) -> List[str]:
    def sort_key(key: str):
        match = re.match(r'^(\d+)', key)
        if match:
            return (0, int(match.group(1)), key)
        return (1, 0, key)
    return sorted(keys, key=sort_key)


def diff_rosters(previous: Optional[Roster], current: Roster) -> RosterDiff:
    if current is None:
        raise ValueError("current roster is required")

    before = build_day_map(previous)
    after = build_day_map(current)
    diff = RosterDiff(staff_no=current.employee.staff_no)

    for key in sort_date_keys(set(before) | set(after)):
        if key not in before:
            diff.added.append(DayChange(key, now=after[key]))
        elif key not in after:
            diff.removed.append(DayChange(key, was=before[key]))
        elif before[key] != after[key]:
            diff.changed.append(DayChange(key, was=before[key], now=after[key]))
    return diff


def format_diff_as_text(diff: Optional[RosterDiff], max_lines: int = 50) -> str:
    if diff is None:
        return 'No diff available.'
    if not diff.has_changes:
        return 'No duty changes detected.'

    lines: List[str] = []
    if diff.changed:
        lines.append('Changed:')
        lines.extend(f"- {c.date}: {c.was} -> {c.now}" for c in diff.changed)
    if diff.added:
        if lines:
            lines.append('')
        lines.append('Added:')
        lines.extend(f"- {c.date}: {c.now}" for c in diff.added)
    if diff.removed:
        if lines:
            lines.append('')
        lines.append('Removed:')
        lines.extend(f"- {c.date}: {c.was}" for c in diff.removed)

    if len(lines) > max_lines:
        hidden = len(lines) - max_lines
        lines = lines[:max_lines] + [f"... ({hidden} more line(s) truncated)"]
    return '\n'.join(lines)
