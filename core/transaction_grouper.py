"""
transaction_grouper.py
-----------------------
Clusters expense transactions into candidate recurring series.

Grouping key is (category_id, sub_category_id) plus a fuzzy description
match against the group's representative description. Amounts are not
compared: utility bills and card balances vary month to month and still
belong to the same series.

Input is expected to be expense transactions with a category, already
bounded to the analysis window by the caller.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List

from core.models import GroupKey, Transaction, TransactionGroup
from config.config_loader import get_recurrence_detection_config

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_description(description: str | None) -> str:
    """Lower-case, trim, and collapse internal whitespace."""
    if not description:
        return ""
    return _WHITESPACE.sub(" ", description.lower().strip())


def is_description_similar(
    first: str | None,
    second: str | None,
    min_word_length: int = 3,
    min_word_overlap: float = 0.5,
) -> bool:
    """
    True if two descriptions look like the same payee.

    Matches on equality, on either containing the other, or on at least
    `min_word_overlap` of the words (length >= min_word_length) being shared.
    Empty descriptions never match.
    """
    a = normalize_description(first)
    b = normalize_description(second)
    if not a or not b:
        return False

    if a == b:
        return True

    if a in b or b in a:
        return True

    words_a = [w for w in a.split(" ") if len(w) >= min_word_length]
    words_b = [w for w in b.split(" ") if len(w) >= min_word_length]
    if not words_a or not words_b:
        return False

    common = set(words_a) & set(words_b)
    overlap = len(common) / max(len(words_a), len(words_b))
    return overlap >= min_word_overlap


@dataclass
class _GroupBuilder:
    """Mutable accumulator, private to a single group() call."""

    key: GroupKey
    common_description: str
    transactions: List[Transaction] = field(default_factory=list)
    total_amount: float = 0.0
    min_amount: float = float("inf")
    max_amount: float = 0.0

    def add(self, transaction: Transaction) -> None:
        amount = transaction.absolute_amount
        self.transactions.append(transaction)
        self.total_amount += amount
        self.min_amount = min(self.min_amount, amount)
        self.max_amount = max(self.max_amount, amount)

    def freeze(self) -> TransactionGroup:
        return TransactionGroup(
            key=self.key,
            common_description=self.common_description,
            transactions=tuple(self.transactions),
            total_amount=self.total_amount,
            average_amount=self.total_amount / len(self.transactions),
            min_amount=self.min_amount,
            max_amount=self.max_amount,
        )


class TransactionGrouper:
    """
    Partitions transactions into similarity groups.

    Usage:
        grouper = TransactionGrouper()
        groups = grouper.group(transactions)
    """

    def __init__(self):
        self.config = get_recurrence_detection_config()["grouping"]
        self.min_group_size = self.config["min_group_size"]
        self.min_word_length = self.config["min_word_length"]
        self.min_word_overlap = self.config["min_word_overlap"]

    def group(self, transactions: List[Transaction]) -> List[TransactionGroup]:
        """
        Group transactions in input order.

        Each transaction joins the first existing group with the same
        category key whose representative description is similar; otherwise
        it starts a new group. Groups smaller than min_group_size are dropped.

        Returns:
            Frozen TransactionGroups in creation order.
        """
        builders: List[_GroupBuilder] = []
        by_key: dict[GroupKey, List[_GroupBuilder]] = {}

        for transaction in transactions:
            key = GroupKey.of(transaction)
            description = normalize_description(transaction.description)

            match = next(
                (
                    b for b in by_key.get(key, [])
                    if is_description_similar(
                        description, b.common_description,
                        self.min_word_length, self.min_word_overlap,
                    )
                ),
                None,
            )

            if match is None:
                match = _GroupBuilder(key=key, common_description=description)
                builders.append(match)
                by_key.setdefault(key, []).append(match)

            match.add(transaction)

        groups = [b.freeze() for b in builders if len(b.transactions) >= self.min_group_size]
        logger.debug(f"Grouped {len(transactions)} transactions into {len(groups)} candidate groups")
        return groups
