"""Balance reconciliation and the session completion gate."""

from dataclasses import dataclass
from decimal import Decimal

from ledger_reconciler.domain.reconciliation import (
    ReconciliationSession,
    ReconciliationSessionStatus,
)
from ledger_reconciler.exceptions import (
    BalanceMismatchError,
    MissingStatementBalanceError,
    UnresolvedItemsError,
)


@dataclass(frozen=True)
class BalanceCheck:
    statement_ending_balance: Decimal | None
    book_ending_balance: Decimal
    difference: Decimal | None
    is_balanced: bool


class BalanceReconciler:
    """Compares the statement balance with the recomputed book balance."""

    def __init__(self, epsilon: Decimal = Decimal("0.01")) -> None:
        self._epsilon = epsilon

    @property
    def epsilon(self) -> Decimal:
        return self._epsilon

    def check(self, session: ReconciliationSession) -> BalanceCheck:
        difference = session.difference
        return BalanceCheck(
            statement_ending_balance=session.statement_ending_balance,
            book_ending_balance=session.book_ending_balance,
            difference=difference,
            is_balanced=difference is not None and abs(difference) < self._epsilon,
        )

    def completion_status(
        self,
        session: ReconciliationSession,
        acknowledge_discrepancy: bool = False,
    ) -> ReconciliationSessionStatus:
        """Status the session may complete into, or raise why it cannot.

        Unresolved items are checked first and are never bypassed by
        acknowledging a discrepancy.
        """
        if session.unmatched_count:
            raise UnresolvedItemsError(session.unmatched_count)
        if session.statement_ending_balance is None:
            raise MissingStatementBalanceError(session.id)

        result = self.check(session)
        if result.is_balanced:
            return ReconciliationSessionStatus.COMPLETED
        if acknowledge_discrepancy:
            return ReconciliationSessionStatus.DISCREPANCY
        raise BalanceMismatchError(
            str(result.statement_ending_balance),
            str(result.book_ending_balance),
            str(result.difference),
        )
