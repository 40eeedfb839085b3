"""
test_engine.py
---------------
Test suite for the recurrence detection engine.

Run from the project root:
    python -m pytest tests/ -v

Tests are organized by layer:
    - Config & pattern types
    - Transaction Grouper
    - Recurrence checks & Pattern Classifier
    - Month schedule matching
    - Detected patterns & pattern store
    - Full Pipeline (integration)
    - CLI
"""

import sys
import os
import pytest
import pandas as pd
from datetime import datetime

# Ensure the project root is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config.config_loader import load_config, get_pattern_check_config, reset_config
from core.models import (
    DetectedPattern,
    DetectionData,
    GroupKey,
    Transaction,
    TransactionIdentifier,
)
from core.pattern_types import ApprovalStatus, RecurrencePattern, is_valid_pattern_type
from core.transaction_grouper import TransactionGrouper, is_description_similar, normalize_description
from core.pattern_classifier import PatternClassifier
from core.month_schedule import check_pattern_match, month_difference, should_occur_in_month
from core.pattern_store import PatternStore
from checks.base_check import score_confidence
from checks.recurrence_checks import MonthlyCheck, get_all_checks
from pipeline import RecurrenceBudgetPipeline


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def reset_config_cache():
    """Clears config cache before each test for isolation."""
    reset_config()
    yield
    reset_config()


def _txn(
    txn_id: str,
    year: int,
    month: int,
    day: int = 15,
    amount: float = -120.0,
    category_id: str = "cat-utilities",
    sub_category_id: str | None = "sub-electric",
    description: str = "Electric Company",
) -> Transaction:
    return Transaction(
        transaction_id=txn_id,
        amount=amount,
        processed_date=datetime(year, month, day),
        category_id=category_id,
        sub_category_id=sub_category_id,
        description=description,
    )


def _series(year_months: list[tuple[int, int]], **kwargs) -> list[Transaction]:
    """Helper: one transaction per (year, month), same payee."""
    return [_txn(f"t{i}", y, m, **kwargs) for i, (y, m) in enumerate(year_months, start=1)]


def _group_of(transactions: list[Transaction]):
    groups = TransactionGrouper().group(transactions)
    assert len(groups) == 1
    return groups[0]


def _make_pattern(
    pattern_type: RecurrencePattern = RecurrencePattern.MONTHLY,
    scheduled_months: list[int] | None = None,
    average_amount: int = 130,
    description: str = "electric company",
    category_id: str = "cat-utilities",
    sub_category_id: str | None = "sub-electric",
    user_id: str = "user-1",
) -> DetectedPattern:
    """Helper: creates a DetectedPattern directly for schedule and budget tests."""
    return DetectedPattern(
        pattern_id="p-1",
        user_id=user_id,
        transaction_identifier=TransactionIdentifier(
            description=description,
            amount_min=100.0,
            amount_max=160.0,
            category_id=category_id,
            sub_category_id=sub_category_id,
        ),
        recurrence_pattern=pattern_type,
        scheduled_months=scheduled_months if scheduled_months is not None else list(range(1, 13)),
        average_amount=average_amount,
        detection_data=DetectionData(confidence=0.9, last_detected=datetime(2024, 7, 1), analysis_months=6),
    )


def _make_txn_frame(rows: list[dict]) -> pd.DataFrame:
    columns = [
        "transaction_id", "processed_date", "amount", "category_id",
        "sub_category_id", "description", "category_name", "sub_category_name",
    ]
    return pd.DataFrame(rows, columns=columns)


def _electric_rows(months=range(1, 7), year=2024, start_id=1) -> list[dict]:
    amounts = [120.0, 135.0, 110.0, 150.0, 125.0, 140.0]
    return [
        {
            "transaction_id": f"e{start_id + i}",
            "processed_date": datetime(year, m, 15),
            "amount": -amounts[i % len(amounts)],
            "category_id": "cat-utilities",
            "sub_category_id": "sub-electric",
            "description": "ELECTRIC COMPANY",
            "category_name": "Utilities",
            "sub_category_name": "Electric",
        }
        for i, m in enumerate(months)
    ]


def _grocery_rows(months=range(1, 7), year=2024, start_id=100) -> list[dict]:
    """Two grocery runs per month: never a recurring pattern."""
    rows = []
    for i, m in enumerate(months):
        for j, (day, amount) in enumerate([(3, 50.0), (20, 70.0)]):
            rows.append({
                "transaction_id": f"g{start_id + 2 * i + j}",
                "processed_date": datetime(year, m, day),
                "amount": -amount,
                "category_id": "cat-food",
                "sub_category_id": "sub-groceries",
                "description": "Fresh Market",
                "category_name": "Food",
                "sub_category_name": "Groceries",
            })
    return rows


# =============================================================================
# CONFIG & PATTERN TYPE TESTS
# =============================================================================

class TestConfig:
    def test_config_loads_successfully(self):
        config = load_config()
        assert "recurrence_detection" in config
        assert "pattern_checks" in config
        assert "confidence_scoring" in config
        assert "averaging" in config

    def test_every_pattern_type_has_check_config(self):
        for pattern_type in RecurrencePattern:
            assert get_pattern_check_config(pattern_type.value)

    def test_missing_check_config_raises(self):
        with pytest.raises(KeyError, match="Available"):
            get_pattern_check_config("fortnightly")

    def test_detection_threshold(self):
        assert load_config()["recurrence_detection"]["detection_threshold"] == 0.7


class TestPatternTypes:
    def test_intervals_and_descriptions(self):
        assert RecurrencePattern.MONTHLY.interval_months == 1
        assert RecurrencePattern.BI_MONTHLY.interval_months == 2
        assert RecurrencePattern.QUARTERLY.interval_months == 3
        assert RecurrencePattern.YEARLY.interval_months == 12
        assert RecurrencePattern.QUARTERLY.description == "Every 3 months (quarterly)"

    def test_valid_pattern_type(self):
        assert is_valid_pattern_type("bi-monthly")
        assert is_valid_pattern_type(RecurrencePattern.YEARLY)
        assert not is_valid_pattern_type("weekly")


# =============================================================================
# TRANSACTION GROUPER TESTS
# =============================================================================

class TestDescriptionSimilarity:
    def test_normalize_description(self):
        assert normalize_description("  Netflix   COM\t ") == "netflix com"
        assert normalize_description(None) == ""

    def test_exact_match(self):
        assert is_description_similar("Netflix", "  NETFLIX ")

    def test_substring_match(self):
        assert is_description_similar("netflix", "netflix subscription")

    def test_word_overlap_at_threshold(self):
        # 2 shared words / max(4, 3) = 0.5
        assert is_description_similar("city water utility bill", "water utility payment")

    def test_dissimilar_descriptions(self):
        assert not is_description_similar("amazon marketplace", "electric company")

    def test_short_words_ignored(self):
        assert not is_description_similar("ab cd", "ab ef")

    def test_empty_never_similar(self):
        assert not is_description_similar("", "")
        assert not is_description_similar("netflix", None)

    @pytest.mark.parametrize("a, b", [
        ("foo foo bar", "foo baz"),
        ("city water utility bill", "water utility payment"),
        ("netflix", "netflix subscription"),
        ("gym membership monthly", "monthly gym"),
        ("abc", "xyz"),
    ])
    def test_similarity_is_symmetric(self, a, b):
        assert is_description_similar(a, b) == is_description_similar(b, a)


class TestTransactionGrouper:
    def test_groups_same_payee_with_varying_amounts(self):
        txns = [
            _txn("1", 2024, 1, amount=-80.0),
            _txn("2", 2024, 2, amount=-200.0),
            _txn("3", 2024, 3, amount=-95.5),
        ]
        group = _group_of(txns)
        assert len(group) == 3
        assert group.min_amount == 80.0
        assert group.max_amount == 200.0
        assert group.total_amount == pytest.approx(375.5)
        assert group.average_amount == pytest.approx(375.5 / 3)
        assert group.common_description == "electric company"

    def test_different_subcategory_not_grouped(self):
        txns = [
            _txn("1", 2024, 1, sub_category_id="sub-electric"),
            _txn("2", 2024, 2, sub_category_id="sub-gas"),
            _txn("3", 2024, 3, sub_category_id="sub-electric"),
        ]
        groups = TransactionGrouper().group(txns)
        assert len(groups) == 1
        assert [t.transaction_id for t in groups[0].transactions] == ["1", "3"]
        assert groups[0].key == GroupKey("cat-utilities", "sub-electric")

    def test_missing_subcategory_is_its_own_key(self):
        txns = [
            _txn("1", 2024, 1, sub_category_id=None),
            _txn("2", 2024, 2, sub_category_id=None),
        ]
        group = _group_of(txns)
        assert group.sub_category_id is None

    def test_singletons_dropped(self):
        txns = [
            _txn("1", 2024, 1, description="Electric Company"),
            _txn("2", 2024, 2, description="Hardware Store"),
        ]
        assert TransactionGrouper().group(txns) == []

    def test_grouping_is_idempotent_and_does_not_mutate_input(self):
        txns = _series([(2024, m) for m in range(1, 5)]) + [
            _txn("x1", 2024, 1, description="Streaming Service", category_id="cat-fun"),
            _txn("x2", 2024, 2, description="streaming service plus", category_id="cat-fun"),
        ]
        before = list(txns)
        grouper = TransactionGrouper()
        first = grouper.group(txns)
        second = grouper.group(txns)

        assert first == second
        assert [[t.transaction_id for t in g.transactions] for g in first] == [
            ["t1", "t2", "t3", "t4"], ["x1", "x2"],
        ]
        assert txns == before


# =============================================================================
# PATTERN CLASSIFIER TESTS
# =============================================================================

class TestConfidenceScoring:
    def test_exact_expectation_capped(self):
        assert score_confidence(3, 3, True) == pytest.approx(0.95)

    def test_partial_accuracy(self):
        # accuracy 0.5 + bonus 0.1
        assert score_confidence(2, 4, True) == pytest.approx(0.6)

    def test_floor_applies(self):
        assert score_confidence(1, 10, True) == pytest.approx(0.5)

    def test_inconsistent_or_zero_expected(self):
        assert score_confidence(5, 3, False) == 0.0
        assert score_confidence(1, 0, True) == 0.0


class TestPatternClassifier:
    def test_checks_run_in_order(self):
        assert [c.pattern_type for c in get_all_checks()] == [
            RecurrencePattern.MONTHLY,
            RecurrencePattern.BI_MONTHLY,
            RecurrencePattern.QUARTERLY,
            RecurrencePattern.YEARLY,
        ]

    def test_two_transactions_in_same_month_rejected(self):
        txns = [
            _txn("1", 2024, 3, day=2),
            _txn("2", 2024, 3, day=28),
            _txn("3", 2024, 4),
            _txn("4", 2024, 5),
        ]
        group = _group_of(txns)
        classifier = PatternClassifier()
        assert not classifier.validate_single_transaction_per_period(group.transactions)
        assert classifier.classify(group, 6) is None

    def test_single_transaction_fails_gate(self):
        assert not PatternClassifier().validate_single_transaction_per_period([_txn("1", 2024, 1)])

    def test_monthly_six_consecutive(self):
        group = _group_of(_series([(2024, m) for m in range(1, 7)]))
        result = PatternClassifier().classify(group, 6)
        assert result is not None
        assert result.pattern_type is RecurrencePattern.MONTHLY
        assert result.scheduled_months == list(range(1, 13))
        assert 0.7 <= result.confidence <= 0.95

    def test_monthly_with_short_history(self):
        # 4 of 6 months present: coverage 0.667
        group = _group_of(_series([(2024, m) for m in range(3, 7)]))
        result = PatternClassifier().classify(group, 6)
        assert result.pattern_type is RecurrencePattern.MONTHLY
        assert result.confidence == pytest.approx(0.7 + (4 / 6) * 0.25 + 0.05)

    def test_monthly_across_year_boundary(self):
        group = _group_of(_series([(2023, 11), (2023, 12), (2024, 1), (2024, 2)]))
        result = PatternClassifier().classify(group, 6)
        # Sorted months [1, 2, 11, 12]: runs of 2 only, ratio 0.5
        assert result is None or result.pattern_type is not RecurrencePattern.MONTHLY

    def test_single_skip_holds_run(self):
        check = MonthlyCheck()
        assert check._is_mostly_consecutive([1, 2, 4, 5])
        assert not check._is_mostly_consecutive([1, 4, 7])

    def test_bi_monthly(self):
        group = _group_of(_series([(2024, 1), (2024, 3), (2024, 5)]))
        result = PatternClassifier().classify(group, 6)
        assert result.pattern_type is RecurrencePattern.BI_MONTHLY
        assert result.scheduled_months == [1, 3, 5]
        assert result.confidence == pytest.approx(0.95)

    def test_bi_monthly_two_occurrences(self):
        group = _group_of(_series([(2024, 1), (2024, 3)]))
        result = PatternClassifier().classify(group, 4)
        assert result.pattern_type is RecurrencePattern.BI_MONTHLY
        assert result.scheduled_months == [1, 3]

    def test_bi_monthly_year_wrap(self):
        group = _group_of(_series([(2023, 11), (2024, 1)]))
        result = PatternClassifier().classify(group, 4)
        assert result.pattern_type is RecurrencePattern.BI_MONTHLY
        assert result.scheduled_months == [1, 11]

    def test_quarterly(self):
        group = _group_of(_series([(2024, 1), (2024, 4), (2024, 7), (2024, 10)]))
        result = PatternClassifier().classify(group, 12)
        assert result.pattern_type is RecurrencePattern.QUARTERLY
        assert result.scheduled_months == [1, 4, 7, 10]
        assert result.confidence == pytest.approx(0.95)

    def test_quarterly_schedule_starts_at_first_month(self):
        group = _group_of(_series([(2024, 2), (2024, 5), (2024, 8)]))
        result = PatternClassifier().classify(group, 9)
        assert result.pattern_type is RecurrencePattern.QUARTERLY
        assert result.scheduled_months == [2, 5, 8, 11]

    def test_yearly_across_years(self):
        group = _group_of(_series([(2022, 3), (2023, 3), (2024, 3)]))
        result = PatternClassifier().classify(group, 12)
        assert result.pattern_type is RecurrencePattern.YEARLY
        assert result.scheduled_months == [3]
        assert result.confidence == pytest.approx(0.95)

    def test_inconsistent_spacing_rejected(self):
        group = _group_of(_series([(2024, 1), (2024, 2), (2024, 6)]))
        assert PatternClassifier().classify(group, 6) is None

    def test_unusual_cadence_rejected(self):
        # Every 4 months is not a supported cadence
        group = _group_of(_series([(2024, 1), (2024, 5), (2024, 9)]))
        assert PatternClassifier().classify(group, 12) is None

    def test_spacing_validation_sorts_chronologically(self):
        classifier = PatternClassifier()
        assert classifier.validate_spacing_consistency([(2023, 9), (2023, 10), (2023, 11)])
        assert not classifier.validate_spacing_consistency([(2023, 1), (2023, 2), (2023, 9)])

    def test_non_positive_window_returns_none(self):
        group = _group_of(_series([(2024, 1), (2024, 2), (2024, 3)]))
        assert PatternClassifier().classify(group, 0) is None


# =============================================================================
# MONTH SCHEDULE TESTS
# =============================================================================

class TestMonthSchedule:
    def test_month_difference(self):
        assert month_difference(3, 1) == 2
        assert month_difference(2, 12) == 2
        assert month_difference(1, 3) == 10

    def test_month_difference_rejects_bad_month(self):
        with pytest.raises(ValueError, match="target month"):
            month_difference(13, 1)
        with pytest.raises(ValueError, match="base month"):
            month_difference(1, 0)

    def test_bi_monthly_match(self):
        result = check_pattern_match(RecurrencePattern.BI_MONTHLY, [1, 7], 3)
        assert result.matches
        assert result.base_month == 1
        assert result.months_from_base == 2

        assert check_pattern_match("bi-monthly", [2], 12).matches
        assert not check_pattern_match("bi-monthly", [2], 3).matches

    def test_quarterly_match(self):
        assert check_pattern_match(RecurrencePattern.QUARTERLY, [11], 2).matches
        assert not check_pattern_match(RecurrencePattern.QUARTERLY, [1], 2).matches

    def test_yearly_and_monthly(self):
        assert check_pattern_match(RecurrencePattern.YEARLY, [3], 3).matches
        assert not check_pattern_match(RecurrencePattern.YEARLY, [3], 4).matches
        assert check_pattern_match(RecurrencePattern.MONTHLY, [], 7).matches

    def test_invalid_inputs(self):
        assert not check_pattern_match("weekly", [1], 1).matches
        assert not check_pattern_match(RecurrencePattern.QUARTERLY, [], 1).matches
        assert not check_pattern_match(RecurrencePattern.QUARTERLY, [1], 13).matches
        assert not check_pattern_match(RecurrencePattern.QUARTERLY, [0, 3], 6).matches

    def test_should_occur_in_month(self):
        pattern = _make_pattern(RecurrencePattern.QUARTERLY, scheduled_months=[1, 4, 7, 10])
        assert should_occur_in_month(pattern, 4)
        assert not should_occur_in_month(pattern, 5)


# =============================================================================
# DETECTED PATTERN & STORE TESTS
# =============================================================================

class TestDetectedPattern:
    def test_matches_transaction(self):
        pattern = _make_pattern()
        assert pattern.matches_transaction(_txn("1", 2024, 7, amount=-130.0, description="ELECTRIC COMPANY INC"))

    def test_rejects_amount_category_and_description(self):
        pattern = _make_pattern()
        assert not pattern.matches_transaction(_txn("1", 2024, 7, amount=-500.0))
        assert not pattern.matches_transaction(_txn("2", 2024, 7, category_id="cat-other"))
        assert not pattern.matches_transaction(_txn("3", 2024, 7, sub_category_id="sub-gas"))
        assert not pattern.matches_transaction(_txn("4", 2024, 7, description="Water Board"))
        assert not pattern.matches_transaction(_txn("5", 2024, 7, description=""))

    def test_display_name(self):
        pattern = _make_pattern()
        assert pattern.display_name == "electric company (Unknown)"
        pattern.category_name = "Utilities"
        pattern.sub_category_name = "Electric"
        assert pattern.display_name == "electric company (Utilities → Electric)"

    def test_next_scheduled_month(self):
        pattern = _make_pattern(RecurrencePattern.QUARTERLY, scheduled_months=[1, 4, 7, 10])
        assert pattern.next_scheduled_month(5) == 7
        assert pattern.next_scheduled_month(11) == 1

    def test_new_pattern_is_pending_and_inactive(self):
        pattern = _make_pattern()
        assert pattern.approval_status is ApprovalStatus.PENDING
        assert not pattern.is_active
        assert pattern.approved_at is None
        assert not pattern.is_active_for_month(3)
        assert pattern.get_amount_for_month(3) == 0

    def test_approve(self):
        pattern = _make_pattern(RecurrencePattern.QUARTERLY, scheduled_months=[1, 4, 7, 10], average_amount=300)
        assert pattern.approve() is pattern
        assert pattern.approval_status is ApprovalStatus.APPROVED
        assert pattern.is_active
        assert pattern.approved_at is not None
        assert pattern.is_active_for_month(4)
        assert pattern.get_amount_for_month(4) == 300
        assert pattern.get_amount_for_month(5) == 0

    def test_reject(self):
        pattern = _make_pattern().approve().reject()
        assert pattern.approval_status is ApprovalStatus.REJECTED
        assert not pattern.is_active
        assert pattern.get_amount_for_month(1) == 0


class TestPatternStore:
    def test_upsert_is_idempotent(self):
        store = PatternStore()
        first = _make_pattern(average_amount=100)
        store.upsert([first])

        again = _make_pattern(average_amount=140)
        again.pattern_id = "p-2"
        saved = store.upsert([again])

        assert len(store) == 1
        assert saved[0].pattern_id == "p-1"
        assert saved[0].average_amount == 140

    def test_active_patterns_by_user(self):
        store = PatternStore()
        store.upsert([_make_pattern(user_id="a").approve(), _make_pattern(user_id="b").approve()])
        assert [p.user_id for p in store.active_patterns("a")] == ["a"]

    def test_only_approved_patterns_are_active(self):
        store = PatternStore()
        pending = _make_pattern(description="water board")
        approved = _make_pattern(description="electric company").approve()
        rejected = _make_pattern(description="gas utility").reject()
        store.upsert([pending, approved, rejected])

        assert store.active_patterns("user-1") == [approved]
        assert store.pending_patterns("user-1") == [pending]
        assert len(store.user_patterns("user-1")) == 3

    def test_upsert_keeps_approval_state(self):
        store = PatternStore()
        store.upsert([_make_pattern(average_amount=100)])
        store.pending_patterns("user-1")[0].approve()

        saved = store.upsert([_make_pattern(average_amount=140)])

        assert saved[0].approval_status is ApprovalStatus.APPROVED
        assert saved[0].is_active
        assert saved[0].average_amount == 140
        assert store.pending_patterns("user-1") == []

    def test_patterns_for_month(self):
        store = PatternStore()
        quarterly = _make_pattern(RecurrencePattern.QUARTERLY, scheduled_months=[1, 4, 7, 10]).approve()
        store.upsert([quarterly])
        assert store.patterns_for_month("user-1", 7) == [quarterly]
        assert store.patterns_for_month("user-1", 8) == []


# =============================================================================
# FULL PIPELINE INTEGRATION TESTS
# =============================================================================

END_DATE = datetime(2024, 6, 30)


class TestPipeline:
    def test_detects_monthly_bill(self):
        txns = _make_txn_frame(_electric_rows() + _grocery_rows())
        pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
        patterns = pipeline.detect_patterns("user-1", txns, end_date=END_DATE)

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.recurrence_pattern is RecurrencePattern.MONTHLY
        assert pattern.average_amount == 130
        assert pattern.transaction_identifier.description == "electric company"
        assert pattern.transaction_identifier.amount_min == 110.0
        assert pattern.transaction_identifier.amount_max == 150.0
        assert pattern.detection_data.confidence >= 0.7
        assert pattern.detection_data.analysis_months == 6
        assert [s.transaction_id for s in pattern.detection_data.sample_transactions] == ["e1", "e2", "e3"]
        assert pattern.display_name == "electric company (Utilities → Electric)"

    def test_income_and_uncategorized_filtered(self):
        rows = _electric_rows()
        for row in rows:
            row["amount"] = abs(row["amount"])
        uncategorized = _electric_rows(start_id=50)
        for row in uncategorized:
            row["category_id"] = None
        txns = _make_txn_frame(rows + uncategorized)

        pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
        assert pipeline.detect_patterns("user-1", txns, end_date=END_DATE) == []

    def test_window_excludes_old_transactions(self):
        txns = _make_txn_frame(_electric_rows(year=2022))
        pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
        assert pipeline.detect_patterns("user-1", txns, end_date=END_DATE) == []

    def test_too_few_transactions(self):
        txns = _make_txn_frame(_electric_rows(months=[5, 6]))
        pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
        assert pipeline.detect_patterns("user-1", txns, end_date=END_DATE) == []

    def test_missing_columns_raises(self):
        bad_df = pd.DataFrame({"transaction_id": ["1"], "amount": [-10.0]})
        pipeline = RecurrenceBudgetPipeline()
        with pytest.raises(ValueError, match="Missing required columns"):
            pipeline.detect_patterns("user-1", bad_df)

    def test_category_averages_exclude_patterned_spend(self):
        txns = _make_txn_frame(_electric_rows() + _grocery_rows())
        pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
        patterns = pipeline.detect_patterns("user-1", txns, end_date=END_DATE)
        averages = pipeline.calculate_category_averages(txns, patterns=patterns, end_date=END_DATE)

        assert len(averages) == 1
        groceries = averages[0]
        assert groceries.key == GroupKey("cat-food", "sub-groceries")
        assert groceries.transaction_count == 12
        assert groceries.decision.denominator == 6
        assert groceries.average == 120
        assert groceries.category_name == "Food"

    def test_category_average_extends_truncated_history(self):
        # Only 4 months of data in a 6 month window, present every month
        txns = _make_txn_frame(_grocery_rows(months=range(3, 7)))
        pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
        averages = pipeline.calculate_category_averages(txns, end_date=END_DATE)

        assert averages[0].decision.denominator == 6
        assert averages[0].average == 80  # 480 / 6

    def test_budget_projection_fixed_and_variable(self):
        pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
        txns = _make_txn_frame(_grocery_rows())
        averages = pipeline.calculate_category_averages(txns, end_date=END_DATE)

        monthly = _make_pattern(average_amount=130)
        quarterly = _make_pattern(
            RecurrencePattern.QUARTERLY, scheduled_months=[1, 4, 7, 10], average_amount=300,
            description="home insurance", category_id="cat-insurance", sub_category_id=None,
        )
        projections = pipeline.project_monthly_budget(averages, [monthly, quarterly])
        by_key = {p.key: p for p in projections}

        groceries = by_key[GroupKey("cat-food", "sub-groceries")]
        assert groceries.budget_type == "fixed"
        assert groceries.fixed_amount == 120

        electric = by_key[GroupKey("cat-utilities", "sub-electric")]
        assert electric.budget_type == "fixed"
        assert electric.fixed_amount == 130

        insurance = by_key[GroupKey("cat-insurance", None)]
        assert insurance.budget_type == "variable"
        assert insurance.monthly_amounts[4] == 300
        assert insurance.monthly_amounts[5] == 0

    def test_run_end_to_end(self):
        txns = _make_txn_frame(_electric_rows() + _grocery_rows())
        pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
        outputs = pipeline.run("user-1", txns, end_date=END_DATE)

        assert set(outputs) == {"patterns", "category_averages", "budget_projection"}
        assert len(outputs["patterns"]) == 1
        assert outputs["patterns"].iloc[0]["recurrence_pattern"] == "monthly"
        assert outputs["patterns"].iloc[0]["scheduled_months"] == "|".join(str(m) for m in range(1, 13))
        assert outputs["patterns"].iloc[0]["approval_status"] == "pending"
        assert len(outputs["budget_projection"]) == 2
        assert "month_12" in outputs["budget_projection"].columns

    def test_pending_pattern_does_not_change_budget(self):
        txns = _make_txn_frame(_electric_rows() + _grocery_rows())
        pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
        outputs = pipeline.run("user-1", txns, end_date=END_DATE, store=PatternStore())

        averages = outputs["category_averages"].set_index("category_id")
        assert averages.loc["cat-utilities", "average"] == 130
        assert averages.loc["cat-utilities", "transaction_count"] == 6

        projection = outputs["budget_projection"].set_index("category_id")
        assert projection.loc["cat-utilities", "base_average"] == 130
        assert projection.loc["cat-utilities", "patterns"] == ""

    def test_approved_pattern_replaces_category_average(self):
        txns = _make_txn_frame(_electric_rows() + _grocery_rows())
        pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
        store = PatternStore()

        pipeline.run("user-1", txns, end_date=END_DATE, store=store)
        pending = store.pending_patterns("user-1")
        assert len(pending) == 1
        pending[0].approve()

        outputs = pipeline.run("user-1", txns, end_date=END_DATE, store=store)

        assert list(outputs["category_averages"]["category_id"]) == ["cat-food"]
        projection = outputs["budget_projection"].set_index("category_id")
        assert projection.loc["cat-utilities", "base_average"] == 0
        assert projection.loc["cat-utilities", "month_01"] == 130
        assert "electric company" in projection.loc["cat-utilities", "patterns"]
        assert outputs["patterns"].iloc[0]["approval_status"] == "approved"

    def test_rejected_pattern_stays_out_of_budget(self):
        txns = _make_txn_frame(_electric_rows() + _grocery_rows())
        pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
        store = PatternStore()

        pipeline.run("user-1", txns, end_date=END_DATE, store=store)
        store.pending_patterns("user-1")[0].reject()
        outputs = pipeline.run("user-1", txns, end_date=END_DATE, store=store)

        assert outputs["patterns"].iloc[0]["approval_status"] == "rejected"
        assert "cat-utilities" in set(outputs["category_averages"]["category_id"])
        assert store.active_patterns("user-1") == []

    def test_run_with_store_is_idempotent(self):
        txns = _make_txn_frame(_electric_rows() + _grocery_rows())
        pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
        store = PatternStore()

        first = pipeline.run("user-1", txns, end_date=END_DATE, store=store)
        second = pipeline.run("user-1", txns, end_date=END_DATE, store=store)

        assert len(store) == 1
        assert first["patterns"].iloc[0]["pattern_id"] == second["patterns"].iloc[0]["pattern_id"]

    def test_empty_input(self):
        pipeline = RecurrenceBudgetPipeline()
        outputs = pipeline.run("user-1", _make_txn_frame([]), end_date=END_DATE)
        assert all(frame.empty for frame in outputs.values())
        assert "recurrence_pattern" in outputs["patterns"].columns


# =============================================================================
# CLI TESTS
# =============================================================================

class TestMain:
    def test_main_writes_outputs(self, tmp_path):
        from main import main

        input_path = tmp_path / "transactions.csv"
        _make_txn_frame(_electric_rows() + _grocery_rows()).to_csv(input_path, index=False)
        output_dir = tmp_path / "out"

        outputs = main([
            "--input", str(input_path),
            "--output-dir", str(output_dir),
            "--end-date", "2024-06-30",
            "--months", "6",
        ])

        assert len(outputs["patterns"]) == 1
        assert outputs["patterns"].iloc[0]["approval_status"] == "pending"
        written = sorted(p.name.split("_2")[0] for p in output_dir.iterdir())
        assert written == ["budget_projection", "category_averages", "patterns"]

    def test_main_approve_detected(self, tmp_path):
        from main import main

        input_path = tmp_path / "transactions.csv"
        _make_txn_frame(_electric_rows() + _grocery_rows()).to_csv(input_path, index=False)

        outputs = main([
            "--input", str(input_path),
            "--output-dir", str(tmp_path / "out"),
            "--end-date", "2024-06-30",
            "--months", "6",
            "--approve-detected",
        ])

        assert outputs["patterns"].iloc[0]["approval_status"] == "approved"
        assert list(outputs["category_averages"]["category_id"]) == ["cat-food"]

    def test_main_missing_input_exits(self, tmp_path):
        from main import main

        with pytest.raises(SystemExit) as exc:
            main(["--input", str(tmp_path / "missing.csv"), "--output-dir", str(tmp_path)])
        assert exc.value.code == 1


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
