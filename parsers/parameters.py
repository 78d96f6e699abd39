"""
Roster text heuristics.

Kept on the parser side so parsers never import the core package;
core.parameters re-exports ParserParameters for ServiceConfig.
"""

from dataclasses import dataclass


@dataclass
class ParserParameters:
    """Heuristics for placing roster rows on the calendar"""

    # Day-of-month drop that counts as a new month in the duty table
    rollover_threshold_days: int = 7

    # Minimum leading spaces after the date for a continuation row
    continuation_indent: int = 8

    # Credit applied to reserve rows that print none
    reserve_default_credit: str = "4:00"

    def __post_init__(self):
        assert self.rollover_threshold_days > 0, "rollover threshold must be positive"
        assert self.continuation_indent > 0, "continuation indent must be positive"
