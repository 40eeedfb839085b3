"""
pattern_types.py
-----------------
Recurrence pattern and approval vocabulary shared by detection, scheduling
and budgeting.

The string values double as config keys under pattern_checks and as the
values written to output files.
"""

from enum import Enum


class RecurrencePattern(str, Enum):
    MONTHLY = "monthly"
    BI_MONTHLY = "bi-monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def interval_months(self) -> int:
        return PATTERN_INTERVALS[self]

    @property
    def description(self) -> str:
        return PATTERN_DESCRIPTIONS[self]


PATTERN_INTERVALS: dict[RecurrencePattern, int] = {
    RecurrencePattern.MONTHLY: 1,
    RecurrencePattern.BI_MONTHLY: 2,
    RecurrencePattern.QUARTERLY: 3,
    RecurrencePattern.YEARLY: 12,
}

PATTERN_DESCRIPTIONS: dict[RecurrencePattern, str] = {
    RecurrencePattern.MONTHLY: "Every month",
    RecurrencePattern.BI_MONTHLY: "Every 2 months",
    RecurrencePattern.QUARTERLY: "Every 3 months (quarterly)",
    RecurrencePattern.YEARLY: "Once per year",
}

ALL_PATTERN_TYPES: list[str] = [p.value for p in RecurrencePattern]


def is_valid_pattern_type(value) -> bool:
    """True for a RecurrencePattern member or its string value."""
    return value in ALL_PATTERN_TYPES


class ApprovalStatus(str, Enum):
    """User decision on a detected pattern. Only approved patterns feed budgets."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
