"""
averaging_denominator.py
-------------------------
Chooses the divisor used to turn a category's total spend into a monthly
average.

The tension it resolves: a category missing from some months is either a
genuinely irregular expense (divide by the months it appeared in) or a
regular expense whose history is cut short by limited scraping (divide by
the months originally requested). Month sets hold month numbers (1-12).

Nothing here raises on degenerate input; it falls back to a safe divisor
and logs a warning.
"""

import logging
import math
from typing import AbstractSet

from core.models import (
    AveragingDecision,
    CoverageClass,
    DenominatorChoice,
    SpendingPatternAnalysis,
)
from config.config_loader import get_averaging_config

logger = logging.getLogger(__name__)


def _is_consecutive(sorted_months: list[int]) -> bool:
    return all(b == a + 1 for a, b in zip(sorted_months, sorted_months[1:]))


class AveragingDenominatorResolver:
    """
    Smart averaging denominators for budget calculations.

    Usage:
        resolver = AveragingDenominatorResolver()
        choice = resolver.resolve_enhanced({1, 2, 3, 4}, {1, 2, 3, 4}, 6)
        choice.denominator  # 6
    """

    def __init__(self):
        self.config = get_averaging_config()
        self.high_presence_ratio = self.config["high_presence_ratio"]

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def resolve(
        self, category_months: AbstractSet[int], all_data_months_count: int, requested_months: int
    ) -> int:
        """
        Basic denominator: only knows how many months had any data.

        Without the full month set it cannot tell a late start from scattered
        gaps, so every non-degenerate branch divides by actual presence.
        """
        if not category_months:
            logger.warning("No category months provided, returning 1 to avoid division by zero")
            return 1

        present = len(category_months)

        if all_data_months_count <= 0 or requested_months <= 0:
            logger.warning("Invalid data months or requested months, falling back to category months present")
            return present

        if present == all_data_months_count:
            logger.info(
                f"Category appears in ALL {all_data_months_count} available months - "
                f"dividing by actual months present"
            )
            return present

        if present >= math.ceil(all_data_months_count * self.high_presence_ratio):
            logger.info(
                f"Category has high presence ({present}/{all_data_months_count} months) - "
                f"treating as regular expense with some gaps, dividing by actual months present"
            )
            return present

        logger.info(
            f"Category appears sporadically ({present}/{all_data_months_count} months) - "
            f"dividing by actual months present"
        )
        return present

    def resolve_enhanced(
        self, category_months: AbstractSet[int], all_data_months: AbstractSet[int], requested_months: int
    ) -> DenominatorChoice:
        """
        Denominator using the full set of months with data.

        Returns:
            DenominatorChoice with the divisor and the rationale for the branch taken.
        """
        if not category_months:
            return self._choose(1, "No category months provided, returning 1 to avoid division by zero", warn=True)

        present = len(category_months)

        if not all_data_months or requested_months <= 0:
            return self._choose(
                present,
                "Invalid data months or requested months, falling back to category months present",
                warn=True,
            )

        available = len(all_data_months)
        category_sorted = sorted(category_months)
        data_sorted = sorted(all_data_months)

        if present == available:
            if self._is_likely_regular_monthly_expense(category_sorted, data_sorted, requested_months):
                return self._choose(
                    requested_months,
                    f"Category appears to be regular monthly expense - using requested "
                    f"analysis period ({requested_months}) for proper averaging",
                )
            return self._choose(
                present,
                f"Category appears in ALL {available} available months - treating as regular "
                f"expense, dividing by actual months present",
            )

        if present >= math.ceil(available * self.high_presence_ratio):
            if category_sorted[0] == data_sorted[0]:
                return self._choose(
                    present,
                    "Category starts from first available month - treating as regular expense "
                    "with limited history, dividing by actual months present",
                )
            if self._is_likely_regular_expense_starting_mid_period(category_sorted, requested_months):
                return self._choose(
                    requested_months,
                    f"Category appears to be regular expense starting mid-analysis period - "
                    f"using requested period ({requested_months}) for proper averaging",
                )
            return self._choose(
                present,
                "Category has gaps from beginning of data period - treating as irregular, "
                "dividing by actual months present",
            )

        return self._choose(
            present,
            f"Category appears sporadically ({present}/{available} months) - dividing by actual months present",
        )

    def analyze_spending_pattern(
        self, category_months: AbstractSet[int], all_data_months: AbstractSet[int]
    ) -> SpendingPatternAnalysis:
        """
        Classify coverage into REGULAR / MOSTLY_REGULAR / SEMI_REGULAR /
        IRREGULAR. Reporting only; the denominator does not depend on it.
        """
        bands = self.config["coverage_bands"]
        present = len(category_months)
        available = len(all_data_months)

        coverage = (present / available) * 100 if available else 0.0

        if not available:
            pattern_type = CoverageClass.IRREGULAR
        elif present == available:
            pattern_type = CoverageClass.REGULAR
        elif coverage >= bands["mostly_regular_pct"]:
            pattern_type = CoverageClass.MOSTLY_REGULAR
        elif coverage >= bands["semi_regular_pct"]:
            pattern_type = CoverageClass.SEMI_REGULAR
        else:
            pattern_type = CoverageClass.IRREGULAR

        return SpendingPatternAnalysis(
            pattern_type=pattern_type,
            confidence=self.config["band_confidence"][pattern_type.value],
            coverage_percentage=math.floor(coverage + 0.5),
            months_present=present,
            total_months_analyzed=available,
            recommended_denominator=present,
            category_months=sorted(category_months),
            all_data_months=sorted(all_data_months),
        )

    def get_averaging_strategy(
        self, category_months: AbstractSet[int], all_data_months: AbstractSet[int], requested_months: int
    ) -> AveragingDecision:
        """Denominator plus coverage analysis and human-readable reasoning."""
        analysis = self.analyze_spending_pattern(category_months, all_data_months)
        choice = self.resolve_enhanced(category_months, all_data_months, requested_months)

        return AveragingDecision(
            denominator=choice.denominator,
            reasoning=self._generate_reasoning(analysis, choice.denominator),
            coverage=analysis.pattern_type,
            analysis=analysis,
            rationale=choice.rationale,
        )

    # -------------------------------------------------------------------------
    # INTERNAL: HEURISTICS
    # -------------------------------------------------------------------------

    def _is_likely_regular_monthly_expense(
        self, category_sorted: list[int], data_sorted: list[int], requested_months: int
    ) -> bool:
        """
        Present every month, consecutively, right up to the last month of
        data, while the data itself is shorter than the requested window.
        """
        cfg = self.config["extension"]
        if len(category_sorted) < cfg["min_occurrences"] or len(data_sorted) >= requested_months:
            return False

        if not _is_consecutive(category_sorted):
            return False

        continues_until_end = category_sorted[-1] == data_sorted[-1]
        missing_months = requested_months - len(data_sorted)
        return continues_until_end and missing_months >= cfg["min_missing_months"]

    def _is_likely_regular_expense_starting_mid_period(
        self, category_sorted: list[int], requested_months: int
    ) -> bool:
        """Consecutive run covering a large enough share of the requested window."""
        cfg = self.config["mid_period_start"]
        if len(category_sorted) < cfg["min_occurrences"]:
            return False

        if not _is_consecutive(category_sorted):
            return False

        return len(category_sorted) / requested_months >= cfg["min_requested_coverage"]

    # -------------------------------------------------------------------------
    # INTERNAL: REPORTING
    # -------------------------------------------------------------------------

    @staticmethod
    def _choose(denominator: int, rationale: str, warn: bool = False) -> DenominatorChoice:
        if warn:
            logger.warning(rationale)
        else:
            logger.info(rationale)
        return DenominatorChoice(denominator=denominator, rationale=rationale)

    @staticmethod
    def _generate_reasoning(analysis: SpendingPatternAnalysis, denominator: int) -> str:
        coverage = analysis.coverage_percentage

        if analysis.pattern_type is CoverageClass.REGULAR:
            return (
                f"Regular expense appearing in all {analysis.months_present} available months. "
                f"Using actual months ({denominator}) for true average."
            )
        if analysis.pattern_type is CoverageClass.MOSTLY_REGULAR:
            return (
                f"Mostly regular expense ({coverage}% coverage). Missing months likely due to "
                f"limited data history. Using actual months present ({denominator})."
            )
        if analysis.pattern_type is CoverageClass.SEMI_REGULAR:
            return (
                f"Semi-regular expense ({coverage}% coverage). Using actual months present "
                f"({denominator}) to avoid over-averaging."
            )
        return (
            f"Irregular expense ({coverage}% coverage). Using actual months present "
            f"({denominator}) to reflect true spending pattern."
        )
