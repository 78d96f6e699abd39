"""
Pay rules
=========

DPC60: a duty is paid at least 60% of its duty time, even when the roster
credit (flying) time is lower.

    min_minutes = ceil(duty_minutes * 0.6)
    credit missing or below min_minutes -> paid = min_minutes  (DPC60)
    otherwise                           -> paid = credit       (CREDIT)

Also computes the monetary value of a roster at an hourly pay rate.
"""

import math
import re
from dataclasses import dataclass, field
from typing import List, Optional

from models.data_models import Roster

_HOURS_RE = re.compile(r'^\s*(\d{1,3}):(\d{2})\s*$')

BASIS_DPC60 = 'DPC60'
BASIS_CREDIT = 'CREDIT'


def parse_hours_to_minutes(value: Optional[str]) -> Optional[int]:
    """'9:20' -> 560; None for anything that is not H:MM."""
    if not value:
        return None
    match = _HOURS_RE.match(value)
    if not match:
        return None
    minutes = int(match.group(2))
    if minutes > 59:
        return None
    return int(match.group(1)) * 60 + minutes


def format_minutes(minutes: int) -> str:
    """560 -> '9:20'"""
    return f"{minutes // 60}:{minutes % 60:02d}"


def hours_to_decimal(value: Optional[str]) -> float:
    minutes = parse_hours_to_minutes(value)
    return 0.0 if minutes is None else minutes / 60.0


@dataclass
class PaidTime:
    paid_minutes: int
    basis: str                     # BASIS_DPC60 / BASIS_CREDIT
    min_minutes: Optional[int] = None
    credit_minutes: Optional[int] = None


def calculate_paid_minutes(duty_minutes: Optional[int], credit_minutes: Optional[int],
                           ratio: float = 0.6) -> Optional[PaidTime]:
    if duty_minutes is None:
        if credit_minutes is None:
            return None
        return PaidTime(credit_minutes, BASIS_CREDIT, None, credit_minutes)

    min_minutes = math.ceil(duty_minutes * ratio)
    if credit_minutes is None or credit_minutes < min_minutes:
        return PaidTime(min_minutes, BASIS_DPC60, min_minutes, credit_minutes)
    return PaidTime(credit_minutes, BASIS_CREDIT, min_minutes, credit_minutes)


def build_pay_line(duty_hours: Optional[str], credit_hours: Optional[str],
                   ratio: float = 0.6) -> Optional[str]:
    duty = parse_hours_to_minutes(duty_hours)
    if duty is None:
        return None
    paid = calculate_paid_minutes(duty, parse_hours_to_minutes(credit_hours), ratio)
    return format_pay_line(paid)


def format_pay_line(paid: PaidTime) -> str:
    if paid.basis == BASIS_DPC60:
        if paid.credit_minutes is not None:
            return (f"Pay: {format_minutes(paid.paid_minutes)} "
                    f"(DPC60; roster credit {format_minutes(paid.credit_minutes)})")
        return f"Pay: {format_minutes(paid.paid_minutes)} (DPC60)"
    if paid.min_minutes is None:
        return f"Pay: {format_minutes(paid.paid_minutes)} (credit)"
    return (f"Pay: {format_minutes(paid.paid_minutes)} "
            f"(credit; DPC60 min {format_minutes(paid.min_minutes)})")


def format_value_line(paid_minutes: int, pay_rate: float) -> str:
    return f"Value: ${paid_minutes / 60.0 * pay_rate:,.2f}"


# ============================================================================
# ROSTER VALUE
# ============================================================================

@dataclass
class EntryValue:
    date_key: str
    duty_code: Optional[str]
    paid_minutes: int
    basis: str
    value: float


@dataclass
class RosterValue:
    pay_rate: float
    entries: List[EntryValue] = field(default_factory=list)

    @property
    def total_paid_minutes(self) -> int:
        return sum(e.paid_minutes for e in self.entries)

    @property
    def total_value(self) -> float:
        return round(sum(e.value for e in self.entries), 2)


def calculate_roster_value(roster: Roster, pay_rate: float,
                           ratio: float = 0.6) -> RosterValue:
    """
    Paid time and value of every entry carrying duty or credit hours.

    Entries with duty hours go through DPC60; credit-only entries (e.g.
    reserve days) are paid their credit.
    """
    if pay_rate is None or pay_rate < 0:
        raise ValueError("pay_rate must be a non-negative number")

    result = RosterValue(pay_rate=pay_rate)
    for entry in roster.entries:
        paid = calculate_paid_minutes(
            parse_hours_to_minutes(entry.duty_hours),
            parse_hours_to_minutes(entry.credit_hours),
            ratio,
        )
        if paid is None:
            continue
        result.entries.append(EntryValue(
            date_key=entry.date_key,
            duty_code=entry.duty_code,
            paid_minutes=paid.paid_minutes,
            basis=paid.basis,
            value=round(paid.paid_minutes / 60.0 * pay_rate, 2),
        ))
    return result
