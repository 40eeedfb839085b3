"""
base_check.py
--------------
Abstract base class for all recurrence checks.

Each concrete check (monthly, bi-monthly, etc.) inherits from this.
Shared logic (month extraction, occurrence tolerance, the shared
confidence formula) lives here so the four checks cannot drift apart.

Concrete checks only need to implement:
    - _evaluate(): returns (scheduled_months, confidence) or None
"""

from abc import ABC, abstractmethod
from typing import Optional

from core.models import PatternResult, TransactionGroup
from core.pattern_types import RecurrencePattern
from config.config_loader import get_pattern_check_config, get_confidence_scoring_config


def score_confidence(actual: int, expected: int, consistent: bool) -> float:
    """
    Shared confidence formula for interval patterns.

    accuracy = 1 - |actual - expected| / expected, plus a bonus of
    per_occurrence_bonus per occurrence (capped), clamped to
    [min_confidence, max_confidence]. Inconsistent timing or a
    non-positive expectation scores 0.
    """
    if not consistent or expected <= 0:
        return 0.0

    cfg = get_confidence_scoring_config()
    accuracy = 1 - abs(actual - expected) / expected
    occurrence_bonus = min(cfg["max_occurrence_bonus"], actual * cfg["per_occurrence_bonus"])
    return min(cfg["max_confidence"], max(cfg["min_confidence"], accuracy + occurrence_bonus))


class BaseRecurrenceCheck(ABC):
    """
    Abstract base for recurrence checks.

    Subclasses implement _evaluate(). This class handles config lookup
    and PatternResult construction.
    """

    def __init__(self, pattern_type: RecurrencePattern):
        self.pattern_type = pattern_type
        self.config = get_pattern_check_config(pattern_type.value)
        self.max_confidence = get_confidence_scoring_config()["max_confidence"]

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def check(self, group: TransactionGroup, analysis_months: int) -> PatternResult | None:
        """
        Test a group against this recurrence type.

        Returns:
            PatternResult if the group matches, None otherwise.
        """
        outcome = self._evaluate(group, analysis_months)
        if outcome is None:
            return None

        scheduled_months, confidence = outcome
        return PatternResult(
            pattern_type=self.pattern_type,
            scheduled_months=scheduled_months,
            confidence=float(confidence),
        )

    # -------------------------------------------------------------------------
    # ABSTRACT METHODS
    # -------------------------------------------------------------------------

    @abstractmethod
    def _evaluate(
        self, group: TransactionGroup, analysis_months: int
    ) -> Optional[tuple[list[int], float]]:
        """
        Decide whether the group follows this recurrence.

        Returns:
            (scheduled_months, confidence) on a match, None otherwise.
        """
        ...

    # -------------------------------------------------------------------------
    # SHARED HELPERS
    # -------------------------------------------------------------------------

    @staticmethod
    def _month_occurrences(group: TransactionGroup) -> list[int]:
        """Month number (1-12) of each transaction, year ignored."""
        return [t.processed_date.month for t in group.transactions]

    def _within_expected(self, actual: int, expected: int) -> bool:
        """Is the occurrence count within tolerance of the expected count?"""
        return abs(actual - expected) <= self.config["occurrence_tolerance"]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(pattern_type={self.pattern_type.value!r})"
