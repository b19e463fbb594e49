"""Reconciliation service: session lifecycle over normalizer, matcher and balance."""

from collections.abc import Mapping, Sequence
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from ledger_reconciler.domain.reconciliation import (
    BalanceAdjustment,
    MatchPass,
    ReconciliationSession,
    ReconciliationSessionStatus,
    StatementItem,
    StatementItemStatus,
)
from ledger_reconciler.domain.value_objects import parse_amount
from ledger_reconciler.exceptions import (
    AccountMismatchError,
    AdjustmentNotFoundError,
    InvalidPeriodError,
    InvalidStateTransitionError,
    SessionNotFoundError,
    StatementItemNotFoundError,
    StatementItemStateError,
    TransactionAlreadyMatchedError,
    TransactionNotFoundError,
)
from ledger_reconciler.logging_config import LogContext, get_logger
from ledger_reconciler.repositories.interfaces import (
    LedgerTransactionRepository,
    ReconciliationSessionRepository,
    UnitOfWork,
)
from ledger_reconciler.services.balance import BalanceReconciler
from ledger_reconciler.services.candidates import CandidateGenerator
from ledger_reconciler.services.concurrency import Deadline, SessionLockRegistry
from ledger_reconciler.services.interfaces import (
    AutoMatchResult,
    ItemFilter,
    ReconciliationService,
    SessionSummary,
    UploadResult,
)
from ledger_reconciler.services.matching import MatchingEngine
from ledger_reconciler.services.normalizer import StatementNormalizer

logger = get_logger(__name__)

_Status = ReconciliationSessionStatus
_OPEN = (_Status.DRAFT, _Status.IN_PROGRESS)
_ACTIVE = (_Status.IN_PROGRESS,)
_CLOSED = (_Status.COMPLETED, _Status.DISCREPANCY)

MANUAL_CONFIDENCE = 100


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ReconciliationServiceImpl(ReconciliationService):
    """Drives reconciliation sessions through their lifecycle.

    Every mutating operation holds the session's lock for its whole duration
    and writes through a single database transaction, so a failure leaves the
    persisted session exactly as it was. Auto-match computes its plan between
    two transactions, outside the database lock, and applies it atomically.
    """

    def __init__(
        self,
        session_repo: ReconciliationSessionRepository,
        ledger_repo: LedgerTransactionRepository,
        unit_of_work: UnitOfWork,
        normalizer: StatementNormalizer | None = None,
        candidate_generator: CandidateGenerator | None = None,
        matching_engine: MatchingEngine | None = None,
        balance_reconciler: BalanceReconciler | None = None,
        lock_registry: SessionLockRegistry | None = None,
        operation_timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize ReconciliationServiceImpl.

        Args:
            session_repo: Repository for reconciliation sessions.
            ledger_repo: Read/claim access to the ledger store.
            unit_of_work: Transaction boundary shared by both repositories.
            normalizer: Statement row normalizer.
            candidate_generator: Loads candidate pools from the ledger.
            matching_engine: Computes match plans.
            balance_reconciler: Completion gate.
            lock_registry: Per-session lock registry.
            operation_timeout_seconds: Default budget for upload and manual operations.
        """
        self._session_repo = session_repo
        self._ledger_repo = ledger_repo
        self._uow = unit_of_work
        self._normalizer = normalizer or StatementNormalizer()
        self._candidates = candidate_generator or CandidateGenerator(ledger_repo)
        self._engine = matching_engine or MatchingEngine(
            slack_days=self._candidates.slack_days
        )
        self._balance = balance_reconciler or BalanceReconciler()
        self._locks = lock_registry or SessionLockRegistry()
        self._operation_timeout_seconds = operation_timeout_seconds

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        account_id: UUID,
        period_start: date,
        period_end: date,
        statement_ending_balance: Decimal | str | None = None,
    ) -> ReconciliationSession:
        if period_end < period_start:
            raise InvalidPeriodError(period_start.isoformat(), period_end.isoformat())
        session = ReconciliationSession(
            account_id=account_id,
            period_start=period_start,
            period_end=period_end,
            statement_ending_balance=parse_amount(statement_ending_balance)
            if statement_ending_balance is not None
            else None,
        )
        with self._uow.transaction():
            self._session_repo.add(session)
        logger.info(
            "session_created",
            session_id=str(session.id),
            account_id=str(account_id),
            period_start=period_start.isoformat(),
            period_end=period_end.isoformat(),
        )
        return session

    def get_session(self, session_id: UUID) -> ReconciliationSession:
        session = self._session_repo.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list_sessions(
        self,
        account_id: UUID | None = None,
        status: ReconciliationSessionStatus | None = None,
    ) -> list[ReconciliationSession]:
        if account_id is None:
            return list(self._session_repo.list_all(status))
        sessions = self._session_repo.list_by_account(account_id)
        return [s for s in sessions if status is None or s.status == status]

    def get_session_summary(self, session_id: UUID) -> SessionSummary:
        session = self.get_session(session_id)
        check = self._balance.check(session)
        return SessionSummary(
            session_id=session.id,
            status=session.status,
            statement_ending_balance=check.statement_ending_balance,
            book_ending_balance=check.book_ending_balance,
            adjustments_total=session.adjustments_total,
            difference=check.difference,
            is_balanced=check.is_balanced,
            item_count=session.item_count,
            matched_count=session.matched_count,
            unmatched_count=session.unmatched_count,
            ignored_count=session.ignored_count,
        )

    # ------------------------------------------------------------------
    # Statement upload
    # ------------------------------------------------------------------

    def upload_statement(
        self,
        session_id: UUID,
        rows: Sequence[Mapping[str, Any]],
        timeout: float | None = None,
    ) -> UploadResult:
        deadline = self._deadline("upload_statement", timeout)
        with LogContext(session_id=str(session_id)), self._locks.hold(
            session_id, deadline=deadline
        ):
            with self._uow.transaction():
                session = self.get_session(session_id)
                self._require(session, _OPEN, "upload a statement")
                normalized = self._normalizer.normalize(
                    session.id,
                    rows,
                    first_line_number=session.next_line_number,
                    deadline=deadline,
                )
                session.items.extend(normalized.items)
                if normalized.items and session.status == _Status.DRAFT:
                    session.transition_to(_Status.IN_PROGRESS)
                session.updated_at = _utc_now()
                self._session_repo.update(session)
                deadline.check()

        logger.info(
            "statement_uploaded",
            session_id=str(session_id),
            rows=len(rows),
            items_created=len(normalized.items),
            row_errors=len(normalized.row_errors),
        )
        return UploadResult(
            items_created=len(normalized.items),
            row_errors=normalized.row_errors,
            items=normalized.items,
        )

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def run_auto_match(self, session_id: UUID) -> AutoMatchResult:
        with LogContext(session_id=str(session_id)), self._locks.hold(session_id):
            with self._uow.transaction():
                session = self.get_session(session_id)
                self._require(session, _ACTIVE, "run auto-match")
                pool = self._candidates.build_pool(session)

            plan = self._engine.plan(session.items, pool)
            result = AutoMatchResult(suggestions=plan.suggestions)

            with self._uow.transaction():
                session = self.get_session(session_id)
                self._require(session, _ACTIVE, "run auto-match")
                for assignment in plan.assignments:
                    item = session.find_item(assignment.item_id)
                    if item is None or not item.is_unmatched:
                        continue
                    try:
                        self._ledger_repo.mark_matched(assignment.transaction_id, item.id)
                    except TransactionAlreadyMatchedError:
                        result.conflicts_skipped += 1
                        logger.warning(
                            "match_conflict_skipped",
                            item_id=str(item.id),
                            transaction_id=str(assignment.transaction_id),
                        )
                        continue
                    item.mark_matched(
                        assignment.transaction_id,
                        assignment.confidence,
                        assignment.match_pass,
                    )
                    result.matched_count += 1
                    if assignment.match_pass == MatchPass.EXACT:
                        result.exact_count += 1
                    else:
                        result.scored_count += 1
                for suggestion in plan.suggestions:
                    item = session.find_item(suggestion.item_id)
                    if item is not None and item.is_unmatched:
                        item.record_suggestion(suggestion.transaction_id, suggestion.score)
                if result.matched_count:
                    session.updated_at = _utc_now()
                self._session_repo.update(session)

        logger.info(
            "auto_match_completed",
            session_id=str(session_id),
            matched_count=result.matched_count,
            exact_count=result.exact_count,
            scored_count=result.scored_count,
            conflicts_skipped=result.conflicts_skipped,
            suggestions=len(result.suggestions),
        )
        return result

    def manual_match(
        self,
        session_id: UUID,
        item_id: UUID,
        transaction_id: UUID,
        timeout: float | None = None,
    ) -> StatementItem:
        deadline = self._deadline("manual_match", timeout)
        with self._locks.hold(session_id, deadline=deadline):
            with self._uow.transaction():
                session = self.get_session(session_id)
                self._require(session, _ACTIVE, "match an item")
                item = self._find_item(session, item_id)
                if item.is_matched and item.matched_transaction_id == transaction_id:
                    return item
                if not item.is_unmatched:
                    raise StatementItemStateError(item.id, item.status.value, "match")

                txn = self._ledger_repo.get(transaction_id)
                if txn is None:
                    raise TransactionNotFoundError(transaction_id)
                if txn.account_id != session.account_id:
                    raise AccountMismatchError(transaction_id, session.account_id)
                for other in session.items:
                    if other.is_matched and other.matched_transaction_id == transaction_id:
                        raise TransactionAlreadyMatchedError(transaction_id, other.id)

                self._ledger_repo.mark_matched(transaction_id, item.id)
                item.mark_matched(transaction_id, MANUAL_CONFIDENCE, MatchPass.MANUAL)
                session.updated_at = _utc_now()
                self._session_repo.update(session)
                deadline.check()

        logger.info(
            "item_matched",
            session_id=str(session_id),
            item_id=str(item_id),
            transaction_id=str(transaction_id),
        )
        return item

    def unmatch(
        self, session_id: UUID, item_id: UUID, timeout: float | None = None
    ) -> StatementItem:
        deadline = self._deadline("unmatch", timeout)
        with self._locks.hold(session_id, deadline=deadline):
            with self._uow.transaction():
                session = self.get_session(session_id)
                self._require(session, _ACTIVE, "unmatch an item")
                item = self._find_item(session, item_id)
                if not item.is_matched:
                    return item
                released = item.matched_transaction_id
                if released is not None:
                    self._ledger_repo.clear_matched(released)
                item.clear_match()
                session.updated_at = _utc_now()
                self._session_repo.update(session)
                deadline.check()

        logger.info(
            "item_unmatched",
            session_id=str(session_id),
            item_id=str(item_id),
            transaction_id=str(released),
        )
        return item

    def ignore_item(
        self, session_id: UUID, item_id: UUID, timeout: float | None = None
    ) -> StatementItem:
        return self._set_item_status(
            session_id, item_id, StatementItemStatus.IGNORED, "ignore", timeout
        )

    def restore_item(
        self, session_id: UUID, item_id: UUID, timeout: float | None = None
    ) -> StatementItem:
        return self._set_item_status(
            session_id, item_id, StatementItemStatus.UNMATCHED, "restore", timeout
        )

    def list_items(
        self, session_id: UUID, item_filter: ItemFilter | None = None
    ) -> list[StatementItem]:
        session = self.get_session(session_id)
        item_filter = item_filter or ItemFilter()
        items = [
            i
            for i in session.items
            if item_filter.status is None or i.status == item_filter.status
        ]
        end = None if item_filter.limit is None else item_filter.offset + item_filter.limit
        return items[item_filter.offset : end]

    # ------------------------------------------------------------------
    # Balance
    # ------------------------------------------------------------------

    def set_statement_balance(
        self, session_id: UUID, balance: Decimal | str
    ) -> ReconciliationSession:
        amount = parse_amount(balance)
        with self._locks.hold(session_id), self._uow.transaction():
            session = self.get_session(session_id)
            self._require(session, _OPEN, "set the statement balance")
            session.statement_ending_balance = amount
            session.updated_at = _utc_now()
            self._session_repo.update(session)

        logger.info(
            "statement_balance_set", session_id=str(session_id), balance=str(amount)
        )
        return session

    def add_adjustment(
        self, session_id: UUID, amount: Decimal | str, description: str = ""
    ) -> BalanceAdjustment:
        value = parse_amount(amount)
        with self._locks.hold(session_id), self._uow.transaction():
            session = self.get_session(session_id)
            self._require(session, _ACTIVE, "add an adjustment")
            adjustment = BalanceAdjustment(
                session_id=session.id, amount=value, description=description.strip()
            )
            session.adjustments.append(adjustment)
            session.updated_at = _utc_now()
            self._session_repo.update(session)

        logger.info(
            "adjustment_added",
            session_id=str(session_id),
            adjustment_id=str(adjustment.id),
            amount=str(value),
        )
        return adjustment

    def remove_adjustment(self, session_id: UUID, adjustment_id: UUID) -> None:
        with self._locks.hold(session_id), self._uow.transaction():
            session = self.get_session(session_id)
            self._require(session, _ACTIVE, "remove an adjustment")
            adjustment = session.find_adjustment(adjustment_id)
            if adjustment is None:
                raise AdjustmentNotFoundError(adjustment_id, session_id)
            session.adjustments.remove(adjustment)
            session.updated_at = _utc_now()
            self._session_repo.update(session)

        logger.info(
            "adjustment_removed",
            session_id=str(session_id),
            adjustment_id=str(adjustment_id),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def complete_session(
        self, session_id: UUID, acknowledge_discrepancy: bool = False
    ) -> ReconciliationSession:
        with self._locks.hold(session_id), self._uow.transaction():
            session = self.get_session(session_id)
            self._require(session, _ACTIVE, "complete")
            target = self._balance.completion_status(session, acknowledge_discrepancy)
            session.transition_to(target)
            self._session_repo.update(session)

        logger.info(
            "session_completed",
            session_id=str(session_id),
            status=session.status.value,
            difference=str(session.difference),
        )
        return session

    def rollback_session(self, session_id: UUID) -> ReconciliationSession:
        with self._locks.hold(session_id), self._uow.transaction():
            session = self.get_session(session_id)
            self._require(session, _CLOSED, "roll back")
            released = 0
            for item in session.items:
                if item.is_matched and item.matched_transaction_id is not None:
                    self._ledger_repo.clear_matched(item.matched_transaction_id)
                    item.clear_match()
                    released += 1
                item.record_suggestion(None, None)
            session.transition_to(_Status.IN_PROGRESS)
            self._session_repo.update(session)

        logger.info(
            "session_rolled_back",
            session_id=str(session_id),
            matches_cleared=released,
            rollback_count=session.rollback_count,
        )
        return session

    def archive_session(self, session_id: UUID) -> ReconciliationSession:
        with self._locks.hold(session_id), self._uow.transaction():
            session = self.get_session(session_id)
            self._require(session, _CLOSED, "archive")
            session.transition_to(_Status.ARCHIVED)
            self._session_repo.update(session)

        logger.info("session_archived", session_id=str(session_id))
        return session

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_item_status(
        self,
        session_id: UUID,
        item_id: UUID,
        target: StatementItemStatus,
        action: str,
        timeout: float | None,
    ) -> StatementItem:
        deadline = self._deadline(f"{action}_item", timeout)
        with self._locks.hold(session_id, deadline=deadline):
            with self._uow.transaction():
                session = self.get_session(session_id)
                self._require(session, _ACTIVE, f"{action} an item")
                item = self._find_item(session, item_id)
                if item.status == target:
                    return item
                if item.is_matched:
                    raise StatementItemStateError(item.id, item.status.value, action)
                item.status = target
                item.record_suggestion(None, None)
                session.updated_at = _utc_now()
                self._session_repo.update(session)
                deadline.check()

        logger.info(
            f"item_{action}d",
            session_id=str(session_id),
            item_id=str(item_id),
        )
        return item

    def _deadline(self, operation: str, timeout: float | None) -> Deadline:
        seconds = self._operation_timeout_seconds if timeout is None else timeout
        return Deadline(operation, seconds)

    @staticmethod
    def _require(
        session: ReconciliationSession,
        allowed: tuple[ReconciliationSessionStatus, ...],
        action: str,
    ) -> None:
        if session.status not in allowed:
            raise InvalidStateTransitionError(session.status.value, action)

    @staticmethod
    def _find_item(session: ReconciliationSession, item_id: UUID) -> StatementItem:
        item = session.find_item(item_id)
        if item is None:
            raise StatementItemNotFoundError(item_id, session.id)
        return item
