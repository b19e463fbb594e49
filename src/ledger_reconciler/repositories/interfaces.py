from abc import ABC, abstractmethod
from collections.abc import Iterable
from contextlib import AbstractContextManager
from datetime import date
from typing import Any
from uuid import UUID

from ledger_reconciler.domain.reconciliation import (
    ReconciliationSession,
    ReconciliationSessionStatus,
)
from ledger_reconciler.domain.transactions import LedgerTransaction


class UnitOfWork(ABC):
    """Groups repository writes into one all-or-nothing database transaction."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[Any]:
        """Open a transaction; commit on success, roll back on error.

        Nested calls join the outermost transaction.
        """
        pass

    @property
    @abstractmethod
    def in_transaction(self) -> bool:
        pass


class ReconciliationSessionRepository(ABC):
    """Repository interface for reconciliation sessions.

    Sessions are eagerly loaded with their statement items and adjustments.
    """

    @abstractmethod
    def add(self, session: ReconciliationSession) -> None:
        """Add a new session with its items and adjustments."""
        pass

    @abstractmethod
    def get(self, session_id: UUID) -> ReconciliationSession | None:
        """Get a session by ID, including all items and adjustments."""
        pass

    @abstractmethod
    def update(self, session: ReconciliationSession) -> None:
        """Persist a session. Items are upserted, never deleted."""
        pass

    @abstractmethod
    def list_by_account(self, account_id: UUID) -> Iterable[ReconciliationSession]:
        """List all sessions for an account, oldest first."""
        pass

    @abstractmethod
    def list_all(
        self, status: ReconciliationSessionStatus | None = None
    ) -> Iterable[ReconciliationSession]:
        """List all sessions, optionally restricted to one status."""
        pass


class LedgerTransactionRepository(ABC):
    """Read/claim contract over the ledger store."""

    @abstractmethod
    def add(self, txn: LedgerTransaction) -> None:
        pass

    @abstractmethod
    def get(self, txn_id: UUID) -> LedgerTransaction | None:
        pass

    @abstractmethod
    def find_transactions(
        self,
        account_id: UUID,
        start_date: date,
        end_date: date,
    ) -> Iterable[LedgerTransaction]:
        """Transactions on the account dated within [start_date, end_date]."""
        pass

    @abstractmethod
    def list_by_account(self, account_id: UUID) -> Iterable[LedgerTransaction]:
        pass

    @abstractmethod
    def mark_matched(self, txn_id: UUID, item_id: UUID) -> None:
        """Record that item_id claims the transaction.

        Raises TransactionNotFoundError for an unknown id and
        TransactionAlreadyMatchedError when a different item holds the claim.
        """
        pass

    @abstractmethod
    def clear_matched(self, txn_id: UUID) -> None:
        """Release any claim on the transaction."""
        pass
