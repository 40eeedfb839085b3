"""
pattern_store.py
-----------------
In-memory pattern registry with idempotent upsert.

Keyed on (user_id, description, category_id, sub_category_id). Re-running
detection over the same history updates existing records in place and
keeps their pattern_id and approval state. Only approved, active patterns
are returned by active_patterns().
"""

import logging
from typing import Dict, Iterable, List

from core.models import DetectedPattern
from core.pattern_types import ApprovalStatus

logger = logging.getLogger(__name__)


class PatternStore:
    def __init__(self):
        self._patterns: Dict[tuple, DetectedPattern] = {}

    def upsert(self, patterns: Iterable[DetectedPattern]) -> List[DetectedPattern]:
        """Insert new patterns, refresh existing ones. Returns the stored records."""
        saved: List[DetectedPattern] = []

        for pattern in patterns:
            existing = self._patterns.get(pattern.key)
            if existing is None:
                self._patterns[pattern.key] = pattern
                saved.append(pattern)
                logger.info(f"Saved new transaction pattern: {pattern.display_name}")
                continue

            existing.detection_data = pattern.detection_data
            existing.average_amount = pattern.average_amount
            existing.scheduled_months = pattern.scheduled_months
            saved.append(existing)
            logger.info(f"Updated existing transaction pattern: {existing.display_name}")

        return saved

    def user_patterns(self, user_id: str) -> List[DetectedPattern]:
        return [p for p in self._patterns.values() if p.user_id == user_id]

    def active_patterns(self, user_id: str) -> List[DetectedPattern]:
        """Approved and active patterns: the ones budgets are built from."""
        return [p for p in self.user_patterns(user_id) if p.is_budget_active]

    def pending_patterns(self, user_id: str) -> List[DetectedPattern]:
        return [p for p in self.user_patterns(user_id) if p.approval_status is ApprovalStatus.PENDING]

    def patterns_for_month(self, user_id: str, month: int) -> List[DetectedPattern]:
        return [p for p in self.active_patterns(user_id) if p.is_active_for_month(month)]

    def __len__(self) -> int:
        return len(self._patterns)

    def __repr__(self) -> str:
        return f"PatternStore(patterns={len(self)})"
