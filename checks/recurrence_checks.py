"""
recurrence_checks.py
---------------------
Concrete recurrence checks. One class per recurrence type.

Each check follows the same structure:

    1. Hard gates: occurrence count and coverage against the analysis window.
    2. Spacing: gaps between sorted month numbers must fit the cadence.
    3. Confidence: shared formula for interval patterns, dedicated formulas
       for monthly and yearly.

Month arithmetic here works on raw month numbers (1-12) with fixed
wraparound constants from config.yaml, not calendar-aware month counts.
"""

from collections import Counter

import numpy as np

from core.models import TransactionGroup
from core.pattern_types import RecurrencePattern
from checks.base_check import BaseRecurrenceCheck, score_confidence


# =============================================================================
# MONTHLY
# =============================================================================
class MonthlyCheck(BaseRecurrenceCheck):
    """
    Every-month expenses: rent, mortgage, subscriptions.

    Tolerates short history (60% coverage of the window is enough) as long
    as the occurrence months run mostly consecutively.
    """

    def __init__(self):
        super().__init__(RecurrencePattern.MONTHLY)

    def _evaluate(self, group: TransactionGroup, analysis_months: int):
        months = self._month_occurrences(group)
        actual = len(months)

        if actual < self.config["min_occurrences"] or analysis_months <= 0:
            return None

        coverage_ratio = actual / analysis_months
        if coverage_ratio < self.config["min_coverage_ratio"]:
            return None

        if not self._is_mostly_consecutive(sorted(months)):
            return None

        confidence = self.config["base_confidence"] + coverage_ratio * self.config["coverage_weight"]
        if actual >= self.config["occurrence_bonus_min"]:
            confidence += self.config["occurrence_bonus"]
        confidence = min(self.max_confidence, confidence)

        # Asserts "every month", so every month of the year is scheduled
        return list(range(1, 13)), confidence

    def _is_mostly_consecutive(self, sorted_months: list[int]) -> bool:
        """
        Longest consecutive run, where a one-month skip holds the run
        counter rather than resetting it.
        """
        if len(sorted_months) < self.config["min_occurrences"]:
            return False

        run = 1
        longest = 1
        for gap in np.diff(sorted_months):
            if gap == 1:
                run += 1
                longest = max(longest, run)
            elif gap == 2:
                continue
            else:
                run = 1

        ratio = longest / len(sorted_months)
        return longest >= self.config["min_consecutive_run"] or ratio >= self.config["min_consecutive_ratio"]


# =============================================================================
# BI-MONTHLY
# =============================================================================
class BiMonthlyCheck(BaseRecurrenceCheck):
    """
    Every-other-month bills such as municipal water or gas.

    Gaps of 10 and 11 between sorted month numbers stand in for sequences
    that wrap the year boundary.
    """

    def __init__(self):
        super().__init__(RecurrencePattern.BI_MONTHLY)

    def _evaluate(self, group: TransactionGroup, analysis_months: int):
        months = self._month_occurrences(group)
        actual = len(months)
        if actual < self.config["min_occurrences"]:
            return None

        expected = analysis_months // 2
        if not self._within_expected(actual, expected):
            return None

        valid_gaps = set(self.config["valid_gaps"])
        gaps = np.diff(sorted(months))
        if not all(int(g) in valid_gaps for g in gaps):
            return None

        scheduled_months = sorted(set(months))
        return scheduled_months, score_confidence(actual, expected, True)


# =============================================================================
# QUARTERLY
# =============================================================================
class QuarterlyCheck(BaseRecurrenceCheck):
    """
    Every-third-month expenses. Stricter than bi-monthly: every gap must
    be exactly one quarter. Gets a confidence bonus since fewer
    occurrences fit in any window.
    """

    def __init__(self):
        super().__init__(RecurrencePattern.QUARTERLY)

    def _evaluate(self, group: TransactionGroup, analysis_months: int):
        months = self._month_occurrences(group)
        actual = len(months)
        if actual < self.config["min_occurrences"]:
            return None

        expected = analysis_months // 3
        if not self._within_expected(actual, expected):
            return None

        valid_gaps = set(self.config["valid_gaps"])
        gaps = np.diff(sorted(months))
        if not all(int(g) in valid_gaps for g in gaps):
            return None

        scheduled_months = list(range(min(months), 13, 3))
        confidence = min(
            self.max_confidence,
            score_confidence(actual, expected, True) + self.config["confidence_bonus"],
        )
        return scheduled_months, confidence


# =============================================================================
# YEARLY
# =============================================================================
class YearlyCheck(BaseRecurrenceCheck):
    """
    Once-a-year expenses: insurance renewals, annual memberships.

    Most transactions must land in one month of the year, seen across
    several years or often enough within the window.
    """

    def __init__(self):
        super().__init__(RecurrencePattern.YEARLY)

    def _evaluate(self, group: TransactionGroup, analysis_months: int):
        total = len(group.transactions)
        if total < self.config["min_transactions"]:
            return None

        month_counts = Counter(self._month_occurrences(group))
        # Ties go to the later month
        primary_month = max(sorted(month_counts), key=lambda m: (month_counts[m], m))
        primary = [t for t in group.transactions if t.processed_date.month == primary_month]

        month_consistency = len(primary) / total
        if month_consistency < self.config["min_month_consistency"]:
            return None

        years = {t.processed_date.year for t in primary}
        has_multiple_years = len(years) >= self.config["min_distinct_years"]
        has_enough_occurrences = len(primary) >= self.config["min_primary_occurrences"]
        if not has_multiple_years and not has_enough_occurrences:
            return None

        confidence = self.config["base_confidence"]
        if has_multiple_years:
            confidence += len(years) * self.config["per_year_weight"]
        if has_enough_occurrences:
            confidence += self.config["occurrence_bonus"]
        confidence += month_consistency * self.config["consistency_weight"]
        confidence = min(self.max_confidence, confidence)

        return [primary_month], confidence


# =============================================================================
# CHECK REGISTRY
# =============================================================================
# Evaluation order matters: the first check that matches wins. Monthly goes
# first since it is the most common case and its month sets overlap the others.

CHECK_REGISTRY: dict[RecurrencePattern, type[BaseRecurrenceCheck]] = {
    RecurrencePattern.MONTHLY: MonthlyCheck,
    RecurrencePattern.BI_MONTHLY: BiMonthlyCheck,
    RecurrencePattern.QUARTERLY: QuarterlyCheck,
    RecurrencePattern.YEARLY: YearlyCheck,
}


def get_all_checks() -> list[BaseRecurrenceCheck]:
    """Instantiates all registered checks in evaluation order."""
    return [cls() for cls in CHECK_REGISTRY.values()]
