"""
pipeline.py
------------
Main orchestration layer. Wires together:
    1. TransactionGrouper + PatternClassifier  →  DetectedPatterns
    2. AveragingDenominatorResolver            →  per-category monthly averages
    3. Budget projection                        →  fixed / variable monthly budgets
    4. Output serialization                     →  DataFrames for CSV output

The core components are pure computation; this layer owns window
selection, expense filtering, and conversion from DataFrame rows.

Usage:
    from pipeline import RecurrenceBudgetPipeline

    pipeline = RecurrenceBudgetPipeline(months_to_analyze=6)
    outputs = pipeline.run("user-1", transactions_df)
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from core.averaging_denominator import AveragingDenominatorResolver
from core.models import (
    AveragingDecision,
    DetectedPattern,
    DetectionData,
    GroupKey,
    PatternResult,
    SampleTransaction,
    Transaction,
    TransactionGroup,
    TransactionIdentifier,
)
from core.month_schedule import should_occur_in_month
from core.pattern_classifier import PatternClassifier
from core.pattern_store import PatternStore
from core.pattern_types import RecurrencePattern
from core.transaction_grouper import TransactionGrouper
from config.config_loader import get_recurrence_detection_config

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = [
    "transaction_id", "processed_date", "amount",
    "category_id", "sub_category_id", "description",
]


@dataclass
class CategoryAverage:
    """Non-patterned monthly average for one category / sub-category."""
    key: GroupKey
    average: int
    total_amount: float
    transaction_count: int
    decision: AveragingDecision
    category_name: Optional[str] = None
    sub_category_name: Optional[str] = None


@dataclass
class BudgetProjection:
    """Budget amounts for months 1-12 of one category."""
    key: GroupKey
    budget_type: str                 # "fixed" | "variable"
    base_average: int
    monthly_amounts: Dict[int, int]
    fixed_amount: Optional[int] = None
    pattern_names: List[str] = field(default_factory=list)


def _round_amount(amount: float) -> int:
    """Half-up rounding to whole currency units."""
    return int(math.floor(amount + 0.5))


class RecurrenceBudgetPipeline:
    """
    End-to-end recurrence detection and budget averaging pipeline.

    Orchestrates grouping → classification → averaging → projection
    without exposing the core components to callers.
    """

    def __init__(self, months_to_analyze: int | None = None):
        """
        Args:
            months_to_analyze: Analysis window in months. Defaults to config.
        """
        self.config = get_recurrence_detection_config()
        self.months_to_analyze = months_to_analyze or self.config["default_analysis_months"]
        self.min_transactions = self.config["min_transactions"]
        self.detection_threshold = self.config["detection_threshold"]
        self.sample_count = self.config["sample_transaction_count"]

        self.grouper = TransactionGrouper()
        self.classifier = PatternClassifier()
        self.resolver = AveragingDenominatorResolver()

        logger.info(
            f"Pipeline initialized. Analysis window: {self.months_to_analyze} months. "
            f"Detection threshold: {self.detection_threshold}."
        )

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def run(
        self,
        user_id: str,
        transactions: pd.DataFrame,
        end_date: datetime | None = None,
        store: PatternStore | None = None,
    ) -> Dict[str, pd.DataFrame]:
        """
        Run detection, averaging and projection for one user.

        Args:
            user_id: Owner of the transactions.
            transactions: DataFrame with REQUIRED_COLUMNS.
            end_date: Last day of the analysis window. Defaults to now.
            store: Optional PatternStore. Detected patterns are upserted into
                it, keeping any approval decisions already recorded there.

        Only approved, active patterns are budgeted. Fresh detections are
        PENDING, so without a store holding approvals the budget is built
        from category averages alone.

        Returns:
            {"patterns", "category_averages", "budget_projection"} DataFrames.
        """
        logger.info(f"Pipeline starting for user {user_id}. Input: {len(transactions):,} transactions.")

        # --- Stage 1: Pattern detection ---
        detected = self.detect_patterns(user_id, transactions, end_date=end_date)
        if store is not None:
            detected = store.upsert(detected)
            approved = store.active_patterns(user_id)
        else:
            approved = [p for p in detected if p.is_budget_active]
        logger.info(
            f"Stage 1 complete. Patterns: {len(detected):,} detected, {len(approved):,} approved for budgeting."
        )

        # --- Stage 2: Category averages over non-patterned spend ---
        averages = self.calculate_category_averages(transactions, patterns=approved, end_date=end_date)
        logger.info(f"Stage 2 complete. Category averages: {len(averages):,}.")

        # --- Stage 3: Budget projection ---
        projections = self.project_monthly_budget(averages, approved)
        logger.info(f"Pipeline complete. Budget categories: {len(projections):,}.")

        return {
            "patterns": self._serialize_patterns(detected),
            "category_averages": self._serialize_averages(averages),
            "budget_projection": self._serialize_projections(projections),
        }

    def detect_patterns(
        self, user_id: str, transactions: pd.DataFrame, end_date: datetime | None = None
    ) -> List[DetectedPattern]:
        """
        Detect recurring expense patterns in the analysis window.

        Returns:
            DetectedPatterns at or above the detection threshold.
        """
        df = self._prepare(transactions, end_date)
        logger.info(f"Found {len(df):,} expense transactions for pattern analysis")

        if len(df) < self.min_transactions:
            logger.info("Not enough transactions for pattern detection")
            return []

        names = self._category_names(df)
        groups = self.grouper.group(self._to_transactions(df))
        logger.info(f"Grouped transactions into {len(groups):,} potential patterns")

        detected: List[DetectedPattern] = []
        for group in groups:
            result = self.classifier.classify(group, self.months_to_analyze)
            if result is None or result.confidence < self.detection_threshold:
                continue
            detected.append(self._build_detected_pattern(user_id, group, result, names))

        logger.info(f"Detected {len(detected):,} high-confidence patterns")
        return detected

    def split_patterned(
        self, transactions: Iterable[Transaction], patterns: Sequence[DetectedPattern]
    ) -> tuple[List[Transaction], set[str]]:
        """Separate transactions covered by a pattern from everything else."""
        non_patterned: List[Transaction] = []
        patterned_ids: set[str] = set()

        for transaction in transactions:
            if any(p.matches_transaction(transaction) for p in patterns):
                patterned_ids.add(transaction.transaction_id)
            else:
                non_patterned.append(transaction)

        logger.info(
            f"Found {len(patterned_ids):,} patterned transactions, "
            f"{len(non_patterned):,} non-patterned transactions"
        )
        return non_patterned, patterned_ids

    def calculate_category_averages(
        self,
        transactions: pd.DataFrame,
        patterns: Sequence[DetectedPattern] = (),
        end_date: datetime | None = None,
    ) -> List[CategoryAverage]:
        """
        Monthly average of non-patterned spend per category / sub-category,
        divided by the denominator the resolver picks.
        """
        df = self._prepare(transactions, end_date)
        names = self._category_names(df)
        non_patterned, _ = self.split_patterned(self._to_transactions(df), patterns)

        months_with_data = {t.processed_date.month for t in non_patterned}

        by_key: Dict[GroupKey, List[Transaction]] = {}
        for transaction in non_patterned:
            by_key.setdefault(GroupKey.of(transaction), []).append(transaction)

        averages: List[CategoryAverage] = []
        for key, items in by_key.items():
            category_months = {t.processed_date.month for t in items}
            decision = self.resolver.get_averaging_strategy(
                category_months, months_with_data, self.months_to_analyze
            )
            total = float(np.sum([t.absolute_amount for t in items]))
            average = _round_amount(total / decision.denominator)
            category_name, sub_category_name = names.get(key, (None, None))

            averages.append(CategoryAverage(
                key=key,
                average=average,
                total_amount=round(total, 2),
                transaction_count=len(items),
                decision=decision,
                category_name=category_name,
                sub_category_name=sub_category_name,
            ))
            logger.info(
                f"{category_name or key.category_id}: {average}/month average "
                f"(denominator={decision.denominator}, {decision.coverage.value})"
            )

        return averages

    def project_monthly_budget(
        self, category_averages: Sequence[CategoryAverage], patterns: Sequence[DetectedPattern]
    ) -> List[BudgetProjection]:
        """
        Combine base averages with pattern amounts for months 1-12.

        A category with any non-monthly pattern gets a variable budget;
        otherwise a fixed budget of base average plus monthly patterns.
        """
        averages_by_key = {a.key: a for a in category_averages}
        keys: List[GroupKey] = list(averages_by_key)
        for pattern in patterns:
            key = self._pattern_key(pattern)
            if key not in averages_by_key and key not in keys:
                keys.append(key)

        projections: List[BudgetProjection] = []
        for key in keys:
            base = averages_by_key[key].average if key in averages_by_key else 0
            category_patterns = [p for p in patterns if self._pattern_key(p) == key]
            pattern_names = [p.display_name for p in category_patterns]

            is_variable = any(
                p.recurrence_pattern is not RecurrencePattern.MONTHLY for p in category_patterns
            )

            if is_variable:
                monthly_amounts = {
                    month: base + sum(
                        p.average_amount for p in category_patterns if should_occur_in_month(p, month)
                    )
                    for month in range(1, 13)
                }
                projections.append(BudgetProjection(
                    key=key, budget_type="variable", base_average=base,
                    monthly_amounts=monthly_amounts, pattern_names=pattern_names,
                ))
            else:
                fixed = base + sum(p.average_amount for p in category_patterns)
                projections.append(BudgetProjection(
                    key=key, budget_type="fixed", base_average=base,
                    monthly_amounts={month: fixed for month in range(1, 13)},
                    fixed_amount=fixed, pattern_names=pattern_names,
                ))

        return projections

    # -------------------------------------------------------------------------
    # INTERNAL: DATA PREPARATION
    # -------------------------------------------------------------------------

    def _prepare(self, transactions: pd.DataFrame, end_date: datetime | None) -> pd.DataFrame:
        """
        Validates input, parses dates, keeps categorized expenses inside the
        analysis window, sorted by date.
        """
        missing = [c for c in REQUIRED_COLUMNS if c not in transactions.columns]
        if missing:
            raise ValueError(f"Missing required columns: {missing}")

        df = transactions.copy()

        if not pd.api.types.is_datetime64_any_dtype(df["processed_date"]):
            df["processed_date"] = pd.to_datetime(df["processed_date"])

        end = pd.Timestamp(end_date) if end_date is not None else pd.Timestamp.now()
        start = end - pd.DateOffset(months=self.months_to_analyze)

        df = df[
            (df["processed_date"] >= start)
            & (df["processed_date"] <= end)
            & df["category_id"].notna()
            & (df["amount"] < 0)
        ]

        return df.sort_values("processed_date", kind="stable").reset_index(drop=True)

    @staticmethod
    def _to_transactions(df: pd.DataFrame) -> List[Transaction]:
        transactions = []
        for row in df.itertuples(index=False):
            transactions.append(Transaction(
                transaction_id=str(row.transaction_id),
                amount=float(row.amount),
                processed_date=row.processed_date.to_pydatetime(),
                category_id=str(row.category_id),
                sub_category_id=None if pd.isna(row.sub_category_id) else str(row.sub_category_id),
                description="" if pd.isna(row.description) else str(row.description),
            ))
        return transactions

    @staticmethod
    def _category_names(df: pd.DataFrame) -> Dict[GroupKey, tuple[Optional[str], Optional[str]]]:
        """Display names per category key, when the input carries them."""
        if "category_name" not in df.columns:
            return {}

        names = {}
        has_sub_names = "sub_category_name" in df.columns
        for row in df.itertuples(index=False):
            sub_id = None if pd.isna(row.sub_category_id) else str(row.sub_category_id)
            key = GroupKey(str(row.category_id), sub_id)
            category_name = None if pd.isna(row.category_name) else str(row.category_name)
            sub_name = None
            if has_sub_names and not pd.isna(row.sub_category_name):
                sub_name = str(row.sub_category_name)
            names.setdefault(key, (category_name, sub_name))
        return names

    # -------------------------------------------------------------------------
    # INTERNAL: PATTERN CONSTRUCTION
    # -------------------------------------------------------------------------

    def _build_detected_pattern(
        self,
        user_id: str,
        group: TransactionGroup,
        result: PatternResult,
        names: Dict[GroupKey, tuple[Optional[str], Optional[str]]],
    ) -> DetectedPattern:
        category_name, sub_category_name = names.get(group.key, (None, None))
        samples = [
            SampleTransaction(
                transaction_id=t.transaction_id,
                description=t.description,
                amount=t.absolute_amount,
                date=t.processed_date,
            )
            for t in group.transactions[: self.sample_count]
        ]

        return DetectedPattern(
            pattern_id=str(uuid.uuid4()),
            user_id=user_id,
            transaction_identifier=TransactionIdentifier(
                description=group.common_description,
                amount_min=group.min_amount,
                amount_max=group.max_amount,
                category_id=group.category_id,
                sub_category_id=group.sub_category_id,
            ),
            recurrence_pattern=result.pattern_type,
            scheduled_months=list(result.scheduled_months),
            average_amount=_round_amount(group.average_amount),
            detection_data=DetectionData(
                confidence=result.confidence,
                last_detected=datetime.now(),
                analysis_months=self.months_to_analyze,
                sample_transactions=samples,
            ),
            category_name=category_name,
            sub_category_name=sub_category_name,
        )

    @staticmethod
    def _pattern_key(pattern: DetectedPattern) -> GroupKey:
        ident = pattern.transaction_identifier
        return GroupKey(ident.category_id, ident.sub_category_id)

    # -------------------------------------------------------------------------
    # INTERNAL: OUTPUT SERIALIZATION
    # -------------------------------------------------------------------------

    @staticmethod
    def _serialize_patterns(patterns: Sequence[DetectedPattern]) -> pd.DataFrame:
        columns = [
            "pattern_id", "user_id", "description", "category_id", "sub_category_id",
            "recurrence_pattern", "scheduled_months", "average_amount",
            "amount_min", "amount_max", "confidence", "analysis_months",
            "sample_transaction_ids", "approval_status", "is_active",
        ]
        if not patterns:
            return pd.DataFrame(columns=columns)

        rows = []
        for p in patterns:
            ident = p.transaction_identifier
            rows.append({
                "pattern_id": p.pattern_id,
                "user_id": p.user_id,
                "description": ident.description,
                "category_id": ident.category_id,
                "sub_category_id": ident.sub_category_id,
                "recurrence_pattern": p.recurrence_pattern.value,
                "scheduled_months": "|".join(str(m) for m in p.scheduled_months),
                "average_amount": p.average_amount,
                "amount_min": ident.amount_min,
                "amount_max": ident.amount_max,
                "confidence": round(p.detection_data.confidence, 4),
                "analysis_months": p.detection_data.analysis_months,
                "sample_transaction_ids": "|".join(
                    s.transaction_id for s in p.detection_data.sample_transactions
                ),
                "approval_status": p.approval_status.value,
                "is_active": p.is_active,
            })

        # Sort: confidence descending
        return pd.DataFrame(rows, columns=columns).sort_values(
            "confidence", ascending=False, kind="stable"
        ).reset_index(drop=True)

    @staticmethod
    def _serialize_averages(averages: Sequence[CategoryAverage]) -> pd.DataFrame:
        columns = [
            "category_id", "sub_category_id", "category_name", "sub_category_name",
            "average", "total_amount", "transaction_count", "denominator",
            "coverage", "coverage_percentage", "reasoning",
        ]
        rows = [
            {
                "category_id": a.key.category_id,
                "sub_category_id": a.key.sub_category_id,
                "category_name": a.category_name,
                "sub_category_name": a.sub_category_name,
                "average": a.average,
                "total_amount": a.total_amount,
                "transaction_count": a.transaction_count,
                "denominator": a.decision.denominator,
                "coverage": a.decision.coverage.value,
                "coverage_percentage": a.decision.analysis.coverage_percentage,
                "reasoning": a.decision.reasoning,
            }
            for a in averages
        ]
        return pd.DataFrame(rows, columns=columns)

    @staticmethod
    def _serialize_projections(projections: Sequence[BudgetProjection]) -> pd.DataFrame:
        month_columns = [f"month_{m:02d}" for m in range(1, 13)]
        columns = ["category_id", "sub_category_id", "budget_type", "base_average", *month_columns, "patterns"]
        rows = []
        for proj in projections:
            row = {
                "category_id": proj.key.category_id,
                "sub_category_id": proj.key.sub_category_id,
                "budget_type": proj.budget_type,
                "base_average": proj.base_average,
                "patterns": " | ".join(proj.pattern_names),
            }
            row.update({f"month_{m:02d}": amount for m, amount in proj.monthly_amounts.items()})
            rows.append(row)
        return pd.DataFrame(rows, columns=columns)
