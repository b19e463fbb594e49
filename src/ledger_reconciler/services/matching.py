"""Matching engine: exact pass, scored pass and deterministic greedy assignment."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from uuid import UUID

from ledger_reconciler.domain.reconciliation import (
    MatchCandidate,
    MatchPass,
    StatementItem,
)
from ledger_reconciler.logging_config import get_logger
from ledger_reconciler.services.candidates import CandidatePool
from ledger_reconciler.services.scoring import MatchScorer, WeightedMatchScorer

logger = get_logger(__name__)

EXACT_CONFIDENCE = 100


@dataclass(frozen=True)
class MatchAssignment:
    item_id: UUID
    transaction_id: UUID
    confidence: int
    match_pass: MatchPass


@dataclass(frozen=True)
class MatchSuggestion:
    """Best still-unclaimed candidate for an item left unmatched."""

    item_id: UUID
    transaction_id: UUID | None
    score: int | None


@dataclass
class MatchPlan:
    """Outcome of one matching run, computed before anything is persisted."""

    assignments: list[MatchAssignment] = field(default_factory=list)
    suggestions: list[MatchSuggestion] = field(default_factory=list)

    @property
    def exact_count(self) -> int:
        return sum(1 for a in self.assignments if a.match_pass == MatchPass.EXACT)

    @property
    def scored_count(self) -> int:
        return sum(1 for a in self.assignments if a.match_pass == MatchPass.SCORED)


class MatchingEngine:
    """Pairs unmatched statement items with ledger transactions.

    1. Exact pass, in line order: a lone amount-exact candidate within
       exact_match_days is assigned at confidence 100 and leaves the pool.
    2. Scored pass: every remaining (item, candidate) pair is scored.
    3. Assignment: pairs sorted by descending score, smaller date difference,
       lower transaction id, lower line number, then claimed greedily. Only
       scores at or above the acceptance threshold are committed.
    4. Steps 1-3 repeat over the leftovers until a round assigns nothing;
       each item still unmatched then keeps its best candidate as a
       suggestion. Running the engine again on the outcome assigns nothing.

    The engine never touches storage; callers persist the returned plan.
    """

    def __init__(
        self,
        scorer: MatchScorer | None = None,
        slack_days: int = 5,
        exact_match_days: int = 1,
        acceptance_threshold: int = 70,
        workers: int = 1,
    ) -> None:
        self._scorer = scorer or WeightedMatchScorer(slack_days=slack_days)
        self._slack_days = slack_days
        self._exact_match_days = exact_match_days
        self._acceptance_threshold = acceptance_threshold
        self._workers = workers

    def plan(self, items: list[StatementItem], pool: CandidatePool) -> MatchPlan:
        """Compute assignments for the unmatched items. Consumes pool entries.

        Passes repeat over the leftovers until a round assigns nothing, so a
        transaction freed up by the scored pass is not left for the next run.
        """
        pending = sorted((i for i in items if i.is_unmatched), key=lambda i: i.line_number)
        result = MatchPlan()

        rounds = 0
        while pending:
            rounds += 1
            exact = self._exact_pass(pending, pool)
            result.assignments.extend(exact)
            exact_items = {a.item_id for a in exact}
            remaining = [i for i in pending if i.id not in exact_items]

            scored = self._score_items(remaining, pool)
            assigned = self._assign(remaining, scored)
            result.assignments.extend(assigned)
            for assignment in assigned:
                pool.remove(assignment.transaction_id)

            if not exact and not assigned:
                result.suggestions = self._suggest(remaining, scored)
                break
            assigned_items = {a.item_id for a in assigned}
            pending = [i for i in remaining if i.id not in assigned_items]

        logger.debug(
            "match_plan_computed",
            items=sum(1 for i in items if i.is_unmatched),
            rounds=rounds,
            exact=result.exact_count,
            scored=result.scored_count,
            suggestions=len(result.suggestions),
        )
        return result

    def _exact_pass(
        self, items: list[StatementItem], pool: CandidatePool
    ) -> list[MatchAssignment]:
        assignments = []
        for item in items:
            txn_id = self._exact_candidate(item, pool)
            if txn_id is None:
                continue
            pool.remove(txn_id)
            assignments.append(
                MatchAssignment(
                    item_id=item.id,
                    transaction_id=txn_id,
                    confidence=EXACT_CONFIDENCE,
                    match_pass=MatchPass.EXACT,
                )
            )
        return assignments

    def _assign(
        self, items: list[StatementItem], scored: list[list[MatchCandidate]]
    ) -> list[MatchAssignment]:
        """Greedy assignment of pairs at or above the acceptance threshold."""
        order = _ranking(items)
        ranked = sorted((c for cands in scored for c in cands), key=order)
        claimed_items: set[UUID] = set()
        claimed_txns: set[UUID] = set()
        assignments = []
        for candidate in ranked:
            if candidate.score < self._acceptance_threshold:
                break
            if (
                candidate.statement_item_id in claimed_items
                or candidate.transaction_id in claimed_txns
            ):
                continue
            claimed_items.add(candidate.statement_item_id)
            claimed_txns.add(candidate.transaction_id)
            assignments.append(
                MatchAssignment(
                    item_id=candidate.statement_item_id,
                    transaction_id=candidate.transaction_id,
                    confidence=candidate.confidence,
                    match_pass=MatchPass.SCORED,
                )
            )
        return assignments

    @staticmethod
    def _suggest(
        items: list[StatementItem], scored: list[list[MatchCandidate]]
    ) -> list[MatchSuggestion]:
        order = _ranking(items)
        suggestions = []
        for item, candidates in zip(items, scored, strict=True):
            best = min(candidates, key=order, default=None)
            suggestions.append(
                MatchSuggestion(
                    item_id=item.id,
                    transaction_id=best.transaction_id if best else None,
                    score=best.confidence if best else None,
                )
            )
        return suggestions

    def _exact_candidate(self, item: StatementItem, pool: CandidatePool) -> UUID | None:
        close = [
            txn
            for txn in pool.candidates_for(item, self._slack_days)
            if abs((txn.transaction_date - item.item_date).days) <= self._exact_match_days
        ]
        if len(close) != 1:
            return None
        return close[0].id

    def _score_items(
        self, items: list[StatementItem], pool: CandidatePool
    ) -> list[list[MatchCandidate]]:
        """Score candidates per item, preserving item order."""

        def score_one(item: StatementItem) -> list[MatchCandidate]:
            return [
                self._scorer.score(item, txn)
                for txn in pool.candidates_for(item, self._slack_days)
            ]

        if self._workers <= 1 or len(items) < 2:
            return [score_one(item) for item in items]
        with ThreadPoolExecutor(max_workers=self._workers) as executor:
            return list(executor.map(score_one, items))


def _ranking(items: list[StatementItem]):
    """Sort key for candidates: score, date difference, txn id, line number."""
    line_numbers = {item.id: item.line_number for item in items}

    def order(candidate: MatchCandidate) -> tuple:
        return candidate.sort_key(line_numbers[candidate.statement_item_id])

    return order
