"""Reconciliation session, statement item and match candidate domain models."""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from uuid import UUID, uuid4

from ledger_reconciler.domain.value_objects import ZERO


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class ReconciliationSessionStatus(str, Enum):
    """Lifecycle status of a reconciliation session."""

    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DISCREPANCY = "discrepancy"
    ARCHIVED = "archived"

    def can_transition_to(self, target: "ReconciliationSessionStatus") -> bool:
        """Check the transition table for self -> target."""
        return target in _ALLOWED_TRANSITIONS[self]

    @property
    def is_closed(self) -> bool:
        """Completed or discrepancy: closed but still reversible by rollback."""
        return self in (
            ReconciliationSessionStatus.COMPLETED,
            ReconciliationSessionStatus.DISCREPANCY,
        )


_ALLOWED_TRANSITIONS: dict[ReconciliationSessionStatus, frozenset[ReconciliationSessionStatus]] = {
    ReconciliationSessionStatus.DRAFT: frozenset(
        {ReconciliationSessionStatus.IN_PROGRESS}
    ),
    ReconciliationSessionStatus.IN_PROGRESS: frozenset(
        {
            ReconciliationSessionStatus.COMPLETED,
            ReconciliationSessionStatus.DISCREPANCY,
        }
    ),
    ReconciliationSessionStatus.COMPLETED: frozenset(
        {
            ReconciliationSessionStatus.IN_PROGRESS,
            ReconciliationSessionStatus.ARCHIVED,
        }
    ),
    ReconciliationSessionStatus.DISCREPANCY: frozenset(
        {
            ReconciliationSessionStatus.IN_PROGRESS,
            ReconciliationSessionStatus.ARCHIVED,
        }
    ),
    ReconciliationSessionStatus.ARCHIVED: frozenset(),
}


class StatementItemStatus(str, Enum):
    """Matching status of a statement item."""

    UNMATCHED = "unmatched"
    MATCHED = "matched"
    IGNORED = "ignored"


class MatchPass(str, Enum):
    """How a match was produced."""

    EXACT = "exact"
    SCORED = "scored"
    MANUAL = "manual"


@dataclass
class StatementItem:
    """One line of an externally supplied bank statement.

    Amounts are signed: withdrawals negative, deposits positive.
    """

    session_id: UUID
    item_date: date
    amount: Decimal
    line_number: int
    id: UUID = field(default_factory=uuid4)
    description: str = ""
    reference: str = ""
    status: StatementItemStatus = StatementItemStatus.UNMATCHED
    matched_transaction_id: UUID | None = None
    match_confidence: int | None = None
    match_pass: MatchPass | None = None
    suggested_transaction_id: UUID | None = None
    suggestion_score: int | None = None
    matched_at: datetime | None = None
    created_at: datetime = field(default_factory=_utc_now)

    @property
    def is_unmatched(self) -> bool:
        return self.status == StatementItemStatus.UNMATCHED

    @property
    def is_matched(self) -> bool:
        return self.status == StatementItemStatus.MATCHED

    @property
    def is_ignored(self) -> bool:
        return self.status == StatementItemStatus.IGNORED

    @property
    def dedup_key(self) -> tuple[date, Decimal, str, str]:
        """Fields that identify a duplicate row within one upload."""
        return (self.item_date, self.amount, self.description, self.reference)

    def mark_matched(
        self,
        transaction_id: UUID,
        confidence: int,
        match_pass: MatchPass,
    ) -> None:
        if not 0 <= confidence <= 100:
            raise ValueError(f"Confidence out of range: {confidence}")
        self.status = StatementItemStatus.MATCHED
        self.matched_transaction_id = transaction_id
        self.match_confidence = confidence
        self.match_pass = match_pass
        self.suggested_transaction_id = None
        self.suggestion_score = None
        self.matched_at = _utc_now()

    def clear_match(self) -> None:
        self.status = StatementItemStatus.UNMATCHED
        self.matched_transaction_id = None
        self.match_confidence = None
        self.match_pass = None
        self.matched_at = None

    def record_suggestion(self, transaction_id: UUID | None, score: int | None) -> None:
        self.suggested_transaction_id = transaction_id
        self.suggestion_score = score


@dataclass
class BalanceAdjustment:
    """A manually included amount counted toward the book balance."""

    session_id: UUID
    amount: Decimal
    id: UUID = field(default_factory=uuid4)
    description: str = ""
    created_at: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    """Component scores (each 0.0-1.0) behind a candidate's confidence."""

    date_score: float
    description_score: float
    date_difference_days: int


@dataclass(frozen=True, slots=True)
class MatchCandidate:
    """A scored pairing of a statement item and a ledger transaction.

    Computed per matching run and never persisted.
    """

    statement_item_id: UUID
    transaction_id: UUID
    score: float
    breakdown: ScoreBreakdown

    @property
    def confidence(self) -> int:
        """Score rounded half-up to an integer percentage."""
        value = int(Decimal(str(self.score)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return max(0, min(100, value))

    def sort_key(self, line_number: int) -> tuple[float, int, UUID, int]:
        """Descending score, then closest date, lowest transaction id, item order."""
        return (
            -self.score,
            self.breakdown.date_difference_days,
            self.transaction_id,
            line_number,
        )


@dataclass
class ReconciliationSession:
    """A reconciliation attempt for one account over one period.

    Owns its statement items and balance adjustments. The book balance and the
    difference are always recomputed from the items, never stored.
    """

    account_id: UUID
    period_start: date
    period_end: date
    id: UUID = field(default_factory=uuid4)
    statement_ending_balance: Decimal | None = None
    status: ReconciliationSessionStatus = ReconciliationSessionStatus.DRAFT
    items: list[StatementItem] = field(default_factory=list)
    adjustments: list[BalanceAdjustment] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)
    completed_at: datetime | None = None
    archived_at: datetime | None = None
    rolled_back_at: datetime | None = None
    rollback_count: int = 0

    @property
    def matched_total(self) -> Decimal:
        """Sum of amounts of matched items."""
        return sum((i.amount for i in self.items if i.is_matched), ZERO)

    @property
    def adjustments_total(self) -> Decimal:
        return sum((a.amount for a in self.adjustments), ZERO)

    @property
    def book_ending_balance(self) -> Decimal:
        """Matched item amounts plus manual adjustments."""
        return self.matched_total + self.adjustments_total

    @property
    def difference(self) -> Decimal | None:
        """Statement minus book balance, None until a statement balance is set."""
        if self.statement_ending_balance is None:
            return None
        return self.statement_ending_balance - self.book_ending_balance

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def matched_count(self) -> int:
        """Count of items with MATCHED status."""
        return sum(1 for i in self.items if i.is_matched)

    @property
    def unmatched_count(self) -> int:
        """Count of items with UNMATCHED status."""
        return sum(1 for i in self.items if i.is_unmatched)

    @property
    def ignored_count(self) -> int:
        """Count of items with IGNORED status."""
        return sum(1 for i in self.items if i.is_ignored)

    @property
    def match_rate(self) -> float:
        """Ratio of matched items to all items (0.0-1.0)."""
        if not self.items:
            return 0.0
        return self.matched_count / len(self.items)

    @property
    def next_line_number(self) -> int:
        return max((i.line_number for i in self.items), default=0) + 1

    def find_item(self, item_id: UUID) -> StatementItem | None:
        return next((i for i in self.items if i.id == item_id), None)

    def find_adjustment(self, adjustment_id: UUID) -> BalanceAdjustment | None:
        return next((a for a in self.adjustments if a.id == adjustment_id), None)

    def claimed_transaction_ids(self) -> set[UUID]:
        return {
            i.matched_transaction_id
            for i in self.items
            if i.is_matched and i.matched_transaction_id is not None
        }

    def transition_to(self, target: ReconciliationSessionStatus) -> None:
        """Move to target status. Callers validate with can_transition_to first."""
        if not self.status.can_transition_to(target):
            raise ValueError(f"Illegal transition {self.status.value} -> {target.value}")
        now = _utc_now()
        if target in (
            ReconciliationSessionStatus.COMPLETED,
            ReconciliationSessionStatus.DISCREPANCY,
        ):
            self.completed_at = now
        elif target == ReconciliationSessionStatus.ARCHIVED:
            self.archived_at = now
        elif target == ReconciliationSessionStatus.IN_PROGRESS and self.status.is_closed:
            self.completed_at = None
            self.rolled_back_at = now
            self.rollback_count += 1
        self.status = target
        self.updated_at = now
