"""
models.py
----------
Core domain models. These are the typed contracts between engine layers.

- Transaction / GroupKey / TransactionGroup: input side of detection.
- PatternResult: output of a single recurrence check.
- DetectedPattern: caller-facing record for a recurring series, keyed for
  idempotent upsert on (user, description, category, sub-category).
- DenominatorChoice / SpendingPatternAnalysis / AveragingDecision: outputs
  of the averaging denominator resolver.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from core.pattern_types import ApprovalStatus, RecurrencePattern


# =============================================================================
# TRANSACTIONS & GROUPS
# =============================================================================

@dataclass
class Transaction:
    """A categorized expense transaction as fetched by the caller."""

    transaction_id: str
    amount: float                    # Signed, as stored upstream. Expenses are negative.
    processed_date: datetime
    category_id: str
    sub_category_id: Optional[str] = None
    description: str = ""

    @property
    def absolute_amount(self) -> float:
        return abs(self.amount)

    @property
    def year_month(self) -> tuple[int, int]:
        return (self.processed_date.year, self.processed_date.month)


@dataclass(frozen=True)
class GroupKey:
    """Category identity of a transaction series. None means no sub-category."""

    category_id: str
    sub_category_id: Optional[str] = None

    @classmethod
    def of(cls, transaction: Transaction) -> "GroupKey":
        return cls(transaction.category_id, transaction.sub_category_id or None)


@dataclass(frozen=True)
class TransactionGroup:
    """
    A candidate recurring series: same category key, similar descriptions.

    Frozen once grouping finishes. Amount statistics use absolute values.
    """

    key: GroupKey
    common_description: str
    transactions: tuple[Transaction, ...]
    total_amount: float
    average_amount: float
    min_amount: float
    max_amount: float

    @property
    def category_id(self) -> str:
        return self.key.category_id

    @property
    def sub_category_id(self) -> Optional[str]:
        return self.key.sub_category_id

    def __len__(self) -> int:
        return len(self.transactions)


# =============================================================================
# PATTERN CLASSIFICATION
# =============================================================================

@dataclass(frozen=True)
class PatternResult:
    """Outcome of a recurrence check that matched."""

    pattern_type: RecurrencePattern
    scheduled_months: list[int]      # Month numbers 1-12 the pattern is expected in
    confidence: float                # 0.0 - 0.95


@dataclass
class TransactionIdentifier:
    """Fingerprint used to recognise future transactions of a pattern."""

    description: str                 # Normalized representative description
    amount_min: float
    amount_max: float
    category_id: str
    sub_category_id: Optional[str] = None


@dataclass
class SampleTransaction:
    transaction_id: str
    description: str
    amount: float                    # Absolute
    date: datetime


@dataclass
class DetectionData:
    confidence: float
    last_detected: datetime
    analysis_months: int
    sample_transactions: list[SampleTransaction] = field(default_factory=list)


@dataclass
class DetectedPattern:
    """
    A recurring expense pattern found in a user's transaction history.

    Produced by the pipeline for every classified group at or above the
    detection threshold, in PENDING state. The core never persists these;
    PatternStore gives callers the idempotent upsert semantics keyed on `key`.
    """

    pattern_id: str
    user_id: str
    transaction_identifier: TransactionIdentifier
    recurrence_pattern: RecurrencePattern
    scheduled_months: list[int]
    average_amount: int
    detection_data: DetectionData

    # Optional display names, filled in when the caller knows them
    category_name: Optional[str] = None
    sub_category_name: Optional[str] = None

    # User review state. New detections wait for approval before budgeting.
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    approved_at: Optional[datetime] = None
    is_active: bool = False

    @property
    def is_budget_active(self) -> bool:
        """Approved and active: the only patterns budgets are built from."""
        return self.is_active and self.approval_status is ApprovalStatus.APPROVED

    def approve(self) -> "DetectedPattern":
        self.approval_status = ApprovalStatus.APPROVED
        self.is_active = True
        self.approved_at = datetime.now()
        return self

    def reject(self) -> "DetectedPattern":
        self.approval_status = ApprovalStatus.REJECTED
        self.is_active = False
        self.approved_at = datetime.now()
        return self

    def is_active_for_month(self, month: int) -> bool:
        return self.is_budget_active and month in self.scheduled_months

    def get_amount_for_month(self, month: int) -> int:
        return self.average_amount if self.is_active_for_month(month) else 0

    @property
    def key(self) -> tuple[str, str, str, Optional[str]]:
        ident = self.transaction_identifier
        return (self.user_id, ident.description, ident.category_id, ident.sub_category_id)

    @property
    def display_name(self) -> str:
        category = self.category_name or "Unknown"
        if self.sub_category_name:
            category = f"{category} → {self.sub_category_name}"
        return f"{self.transaction_identifier.description} ({category})"

    def matches_transaction(self, transaction: Transaction) -> bool:
        """True if the transaction looks like another occurrence of this pattern."""
        ident = self.transaction_identifier

        amount = transaction.absolute_amount
        if amount < ident.amount_min or amount > ident.amount_max:
            return False

        if transaction.category_id != ident.category_id:
            return False
        if ident.sub_category_id and transaction.sub_category_id != ident.sub_category_id:
            return False

        description = (transaction.description or "").lower().strip()
        pattern_description = ident.description.lower().strip()
        if not description or not pattern_description:
            return False
        return description in pattern_description or pattern_description in description

    def next_scheduled_month(self, current_month: int) -> Optional[int]:
        """First scheduled month after current_month, wrapping to next year."""
        if not self.scheduled_months:
            return None
        months = sorted(self.scheduled_months)
        return next((m for m in months if m > current_month), months[0])


# =============================================================================
# AVERAGING
# =============================================================================

class CoverageClass(str, Enum):
    REGULAR = "REGULAR"
    MOSTLY_REGULAR = "MOSTLY_REGULAR"
    SEMI_REGULAR = "SEMI_REGULAR"
    IRREGULAR = "IRREGULAR"


@dataclass(frozen=True)
class DenominatorChoice:
    denominator: int
    rationale: str


@dataclass
class SpendingPatternAnalysis:
    """Descriptive coverage report. Does not feed the denominator decision."""

    pattern_type: CoverageClass
    confidence: int                  # 95 / 80 / 60 / 40
    coverage_percentage: int
    months_present: int
    total_months_analyzed: int
    recommended_denominator: int
    category_months: list[int] = field(default_factory=list)
    all_data_months: list[int] = field(default_factory=list)


@dataclass
class AveragingDecision:
    denominator: int
    reasoning: str                   # Human-readable, per coverage band
    coverage: CoverageClass
    analysis: SpendingPatternAnalysis
    rationale: str = ""              # Which resolver branch produced the denominator
