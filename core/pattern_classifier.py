"""
pattern_classifier.py
----------------------
Decides whether a transaction group is a monthly, bi-monthly, quarterly or
yearly recurrence.

Two stages:
    1. Eligibility gate: at most one transaction per calendar month, and
       (with 3+ occurrences) consistent spacing between occurrences.
    2. Ordered checks from checks/recurrence_checks.py; first match wins.

Never raises on degenerate input. "No pattern" is a None result and is the
normal outcome for most groups.
"""

import logging
from collections import Counter
from typing import Iterable, List

import numpy as np

from core.models import PatternResult, Transaction, TransactionGroup
from checks.recurrence_checks import get_all_checks
from config.config_loader import get_recurrence_detection_config

logger = logging.getLogger(__name__)


class PatternClassifier:
    """
    Classifies transaction groups into recurrence patterns.

    Usage:
        classifier = PatternClassifier()
        result = classifier.classify(group, analysis_months=6)
    """

    def __init__(self):
        self.config = get_recurrence_detection_config()["period_validation"]
        self.gap_tolerance = self.config["gap_tolerance_months"]
        self.valid_first_gaps = set(self.config["valid_first_gaps"])
        self.checks = get_all_checks()

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def classify(self, group: TransactionGroup, analysis_months: int) -> PatternResult | None:
        """
        Classify one group.

        Args:
            group: Candidate series from the TransactionGrouper.
            analysis_months: Length of the requested analysis window.

        Returns:
            PatternResult for the first matching check, or None.
        """
        if not self.validate_single_transaction_per_period(group.transactions):
            return None

        for check in self.checks:
            result = check.check(group, analysis_months)
            if result is not None:
                logger.debug(
                    f"'{group.common_description}' classified as {result.pattern_type.value} "
                    f"(confidence={result.confidence:.2f})"
                )
                return result

        return None

    def validate_single_transaction_per_period(self, transactions: Iterable[Transaction]) -> bool:
        """
        True if there is at most one transaction per (year, month) and, for
        3+ occurrence months, their spacing is consistent.
        """
        transactions = list(transactions)
        if len(transactions) < 2:
            return False

        per_month = Counter(t.year_month for t in transactions)
        for (year, month), count in sorted(per_month.items()):
            if count > 1:
                logger.debug(f"Rejecting pattern: {count} transactions in {year}-{month:02d}")
                return False

        year_months = sorted(per_month)
        if len(year_months) >= 3:
            return self.validate_spacing_consistency(year_months)

        return True

    def validate_spacing_consistency(self, year_months: List[tuple[int, int]]) -> bool:
        """
        All gaps (in months) must be within tolerance of the first gap, and
        the first gap must be a known cadence (1, 2, 3, 6 or 12 by default).

        Args:
            year_months: Chronologically sorted (year, month) pairs.
        """
        absolute = [year * 12 + month for year, month in year_months]
        gaps = np.diff(absolute)
        if len(gaps) == 0:
            return True

        first_gap = int(gaps[0])
        if np.any(np.abs(gaps - first_gap) > self.gap_tolerance):
            logger.debug(f"Rejecting pattern: inconsistent spacing. Gaps: {gaps.tolist()}")
            return False

        if first_gap not in self.valid_first_gaps:
            logger.debug(f"Rejecting pattern: invalid gap of {first_gap} months")
            return False

        return True
