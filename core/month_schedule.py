"""
month_schedule.py
------------------
Answers "is this pattern due in month N?" for budget projection.

Works on month numbers only (1-12). Year boundaries are handled by taking
month differences modulo 12.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from core.models import DetectedPattern
from core.pattern_types import RecurrencePattern, is_valid_pattern_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonthMatch:
    matches: bool
    reasoning: str
    base_month: Optional[int] = None
    months_from_base: Optional[int] = None


def _is_month(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 12


def month_difference(target_month: int, base_month: int) -> int:
    """
    Months from base_month forward to target_month, in 0-11.

    month_difference(3, 1) == 2
    month_difference(2, 12) == 2
    month_difference(1, 3) == 10

    Raises:
        ValueError: If either month is not an integer in 1-12.
    """
    if not _is_month(target_month):
        raise ValueError(f"Invalid target month: {target_month}. Must be integer between 1-12.")
    if not _is_month(base_month):
        raise ValueError(f"Invalid base month: {base_month}. Must be integer between 1-12.")
    return (target_month - base_month + 12) % 12


def _validate(scheduled_months: Sequence[int], target_month: int, label: str) -> Optional[MonthMatch]:
    if not scheduled_months:
        return MonthMatch(False, f"No scheduled months provided for {label} pattern matching")
    if not _is_month(target_month):
        return MonthMatch(False, f"Invalid target month: {target_month}. Must be integer between 1-12.")
    invalid = [m for m in scheduled_months if not _is_month(m)]
    if invalid:
        return MonthMatch(False, f"Invalid scheduled months: {invalid}. All must be integers between 1-12.")
    return None


def _interval_match(
    scheduled_months: Sequence[int], target_month: int, interval: int, label: str
) -> MonthMatch:
    failure = _validate(scheduled_months, target_month, label)
    if failure is not None:
        return failure

    for base in scheduled_months:
        difference = month_difference(target_month, base)
        if difference % interval == 0:
            return MonthMatch(
                True,
                f"{label.capitalize()} pattern match: month {target_month} is {difference} months "
                f"from base month {base} (divisible by {interval})",
                base_month=base,
                months_from_base=difference,
            )

    checked = [month_difference(target_month, base) for base in scheduled_months]
    return MonthMatch(
        False,
        f"No {label} pattern match for month {target_month} from scheduled months "
        f"{list(scheduled_months)}. Checked differences: {checked}",
    )


def check_pattern_match(pattern_type, scheduled_months: Sequence[int], target_month: int) -> MonthMatch:
    """Route to the matcher for pattern_type (enum member or string value)."""
    if not is_valid_pattern_type(pattern_type):
        return MonthMatch(
            False,
            f"Unknown pattern type: {pattern_type}. Supported types: "
            f"{[p.value for p in RecurrencePattern]}",
        )
    pattern_type = RecurrencePattern(pattern_type)

    if pattern_type is RecurrencePattern.MONTHLY:
        if not _is_month(target_month):
            return MonthMatch(False, f"Invalid target month: {target_month}. Must be integer between 1-12.")
        return MonthMatch(True, f"Monthly pattern: occurs every month, including month {target_month}")

    if pattern_type is RecurrencePattern.BI_MONTHLY:
        return _interval_match(scheduled_months, target_month, 2, "bi-monthly")

    if pattern_type is RecurrencePattern.QUARTERLY:
        return _interval_match(scheduled_months, target_month, 3, "quarterly")

    failure = _validate(scheduled_months, target_month, "yearly")
    if failure is not None:
        return failure
    if target_month in scheduled_months:
        return MonthMatch(
            True, f"Yearly pattern match: month {target_month} is scheduled in {list(scheduled_months)}"
        )
    return MonthMatch(
        False, f"Yearly pattern mismatch: month {target_month} not in scheduled months {list(scheduled_months)}"
    )


def should_occur_in_month(pattern: DetectedPattern, target_month: int) -> bool:
    """Explicitly scheduled months win; otherwise project from the pattern type."""
    if target_month in pattern.scheduled_months:
        return True

    result = check_pattern_match(pattern.recurrence_pattern, sorted(pattern.scheduled_months), target_month)
    logger.debug(f"Pattern {pattern.pattern_id}: {result.reasoning}")
    return result.matches
