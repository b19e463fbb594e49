from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from ledger_reconciler.config import Settings
from ledger_reconciler.domain.reconciliation import ReconciliationSession, StatementItem
from ledger_reconciler.domain.transactions import LedgerTransaction
from ledger_reconciler.logging_config import configure_logging
from ledger_reconciler.repositories.sqlite import (
    SQLiteDatabase,
    SQLiteLedgerTransactionRepository,
    SQLiteReconciliationSessionRepository,
)
from ledger_reconciler.services.concurrency import SessionLockRegistry
from ledger_reconciler.services.reconciliation import ReconciliationServiceImpl


@pytest.fixture(scope="session", autouse=True)
def _logging() -> None:
    configure_logging(Settings(log_level="DEBUG", sqlite_path=":memory:"))


@pytest.fixture
def test_settings() -> Settings:
    return Settings(environment="testing", sqlite_path=":memory:")


@pytest.fixture
def db() -> SQLiteDatabase:
    """Create an in-memory SQLite database for testing."""
    database = SQLiteDatabase(":memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def ledger_repo(db: SQLiteDatabase) -> SQLiteLedgerTransactionRepository:
    return SQLiteLedgerTransactionRepository(db)


@pytest.fixture
def session_repo(db: SQLiteDatabase) -> SQLiteReconciliationSessionRepository:
    return SQLiteReconciliationSessionRepository(db)


@pytest.fixture
def service(
    db: SQLiteDatabase,
    session_repo: SQLiteReconciliationSessionRepository,
    ledger_repo: SQLiteLedgerTransactionRepository,
) -> ReconciliationServiceImpl:
    """Reconciliation service over real SQLite repositories."""
    return ReconciliationServiceImpl(
        session_repo=session_repo,
        ledger_repo=ledger_repo,
        unit_of_work=db,
        lock_registry=SessionLockRegistry(timeout_seconds=1.0),
    )


@pytest.fixture
def account_id() -> UUID:
    return uuid4()


@pytest.fixture
def add_txn(ledger_repo: SQLiteLedgerTransactionRepository, account_id: UUID):
    """Persist a ledger transaction on the test account."""

    def _add(
        txn_date: date,
        amount: str,
        description: str = "",
        account: UUID | None = None,
    ) -> LedgerTransaction:
        txn = LedgerTransaction(
            account_id=account or account_id,
            transaction_date=txn_date,
            amount=Decimal(amount),
            description=description,
        )
        ledger_repo.add(txn)
        return txn

    return _add


@pytest.fixture
def january_session(
    service: ReconciliationServiceImpl, account_id: UUID
) -> ReconciliationSession:
    return service.create_session(
        account_id=account_id,
        period_start=date(2024, 1, 1),
        period_end=date(2024, 1, 31),
    )


def make_item(
    session_id: UUID,
    item_date: date,
    amount: str,
    description: str = "",
    line_number: int = 1,
) -> StatementItem:
    return StatementItem(
        session_id=session_id,
        item_date=item_date,
        amount=Decimal(amount),
        line_number=line_number,
        description=description,
    )


def make_txn(
    account_id: UUID, txn_date: date, amount: str, description: str = ""
) -> LedgerTransaction:
    return LedgerTransaction(
        account_id=account_id,
        transaction_date=txn_date,
        amount=Decimal(amount),
        description=description,
    )
