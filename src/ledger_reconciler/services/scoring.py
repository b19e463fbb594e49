"""Candidate scoring strategies for the matching engine."""

from abc import ABC, abstractmethod

from ledger_reconciler.domain.reconciliation import MatchCandidate, ScoreBreakdown, StatementItem
from ledger_reconciler.domain.transactions import LedgerTransaction


def tokenize(text: str) -> frozenset[str]:
    """Lower-cased, whitespace-split word set."""
    return frozenset(text.lower().split())


def jaccard_similarity(a: str, b: str) -> float:
    """Token-set Jaccard index of two descriptions, 0.0 when either is empty."""
    left = tokenize(a)
    right = tokenize(b)
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def date_proximity(days: int, slack_days: int) -> float:
    """1.0 on the same day, decaying linearly to 0.0 at the slack edge."""
    if slack_days <= 0:
        return 1.0 if days == 0 else 0.0
    return max(0.0, 1.0 - abs(days) / slack_days)


class MatchScorer(ABC):
    """Scores one statement item against one eligible ledger transaction.

    Implementations return a score on the 0-100 scale. Candidates are already
    amount-exact and inside the date window when they reach the scorer.
    """

    @abstractmethod
    def score(self, item: StatementItem, txn: LedgerTransaction) -> MatchCandidate:
        pass


class WeightedMatchScorer(MatchScorer):
    """Weighted blend of date proximity and description similarity.

    Default weights: date 40%, description 60%.
    """

    def __init__(
        self,
        slack_days: int = 5,
        date_weight: float = 0.4,
        description_weight: float = 0.6,
    ) -> None:
        if abs(date_weight + description_weight - 1.0) > 1e-9:
            raise ValueError("date_weight and description_weight must sum to 1.0")
        self._slack_days = slack_days
        self._date_weight = date_weight
        self._description_weight = description_weight

    def score(self, item: StatementItem, txn: LedgerTransaction) -> MatchCandidate:
        days = abs((item.item_date - txn.transaction_date).days)
        date_score = date_proximity(days, self._slack_days)
        description_score = jaccard_similarity(item.description, txn.description)
        total = 100.0 * (
            self._date_weight * date_score + self._description_weight * description_score
        )
        return MatchCandidate(
            statement_item_id=item.id,
            transaction_id=txn.id,
            score=total,
            breakdown=ScoreBreakdown(
                date_score=date_score,
                description_score=description_score,
                date_difference_days=days,
            ),
        )
