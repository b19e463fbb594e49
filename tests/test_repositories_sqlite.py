"""Tests for SQLite repository implementations."""

from datetime import date
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

import pytest

from conftest import make_item, make_txn
from ledger_reconciler.domain.reconciliation import (
    BalanceAdjustment,
    MatchPass,
    ReconciliationSession,
    ReconciliationSessionStatus,
    StatementItemStatus,
)
from ledger_reconciler.exceptions import (
    TransactionAlreadyMatchedError,
    TransactionNotFoundError,
)
from ledger_reconciler.repositories.sqlite import (
    SQLiteDatabase,
    SQLiteLedgerTransactionRepository,
    SQLiteReconciliationSessionRepository,
)


@pytest.fixture
def session() -> ReconciliationSession:
    return ReconciliationSession(
        account_id=uuid4(),
        period_start=date(2024, 1, 1),
        period_end=date(2024, 1, 31),
        statement_ending_balance=Decimal("1000.00"),
    )


class TestSQLiteDatabase:
    def test_initialize_is_idempotent(self, db: SQLiteDatabase) -> None:
        db.initialize()
        with db.transaction() as conn:
            tables = {
                row["name"]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        assert {
            "ledger_transactions",
            "reconciliation_sessions",
            "statement_items",
            "balance_adjustments",
        } <= tables

    def test_nested_transaction_commits_once(
        self, db: SQLiteDatabase, ledger_repo: SQLiteLedgerTransactionRepository
    ) -> None:
        txn = make_txn(uuid4(), date(2024, 1, 5), "10.00")
        with db.transaction():
            assert db.in_transaction
            ledger_repo.add(txn)
            assert db.in_transaction
        assert not db.in_transaction
        assert ledger_repo.get(txn.id) is not None

    def test_outer_failure_rolls_back_inner_writes(
        self, db: SQLiteDatabase, ledger_repo: SQLiteLedgerTransactionRepository
    ) -> None:
        txn = make_txn(uuid4(), date(2024, 1, 5), "10.00")
        with pytest.raises(RuntimeError), db.transaction():
            ledger_repo.add(txn)
            raise RuntimeError("abort")

        assert ledger_repo.get(txn.id) is None

    def test_file_database_persists(self, tmp_path: Path) -> None:
        path = tmp_path / "recon.db"
        txn = make_txn(uuid4(), date(2024, 1, 5), "10.00")

        first = SQLiteDatabase(path)
        first.initialize()
        SQLiteLedgerTransactionRepository(first).add(txn)
        first.close()

        second = SQLiteDatabase(path)
        second.initialize()
        assert SQLiteLedgerTransactionRepository(second).get(txn.id) is not None
        second.close()


class TestSQLiteLedgerTransactionRepository:
    def test_add_and_get(self, ledger_repo: SQLiteLedgerTransactionRepository) -> None:
        txn = make_txn(uuid4(), date(2024, 1, 5), "-150.00", "Office")
        ledger_repo.add(txn)

        loaded = ledger_repo.get(txn.id)

        assert loaded is not None
        assert loaded.amount == Decimal("-150.00")
        assert loaded.transaction_date == date(2024, 1, 5)
        assert loaded.description == "Office"
        assert loaded.matched_item_id is None

    def test_get_missing(self, ledger_repo: SQLiteLedgerTransactionRepository) -> None:
        assert ledger_repo.get(uuid4()) is None

    def test_find_transactions_by_range(
        self, ledger_repo: SQLiteLedgerTransactionRepository
    ) -> None:
        account = uuid4()
        inside = make_txn(account, date(2024, 1, 10), "1.00")
        boundary = make_txn(account, date(2024, 1, 31), "2.00")
        outside = make_txn(account, date(2024, 2, 1), "3.00")
        for txn in (outside, boundary, inside):
            ledger_repo.add(txn)

        found = ledger_repo.find_transactions(account, date(2024, 1, 1), date(2024, 1, 31))

        assert [t.id for t in found] == [inside.id, boundary.id]

    def test_mark_matched_is_exclusive(
        self, ledger_repo: SQLiteLedgerTransactionRepository
    ) -> None:
        txn = make_txn(uuid4(), date(2024, 1, 5), "1.00")
        ledger_repo.add(txn)
        item_id = uuid4()

        ledger_repo.mark_matched(txn.id, item_id)
        ledger_repo.mark_matched(txn.id, item_id)

        with pytest.raises(TransactionAlreadyMatchedError):
            ledger_repo.mark_matched(txn.id, uuid4())
        assert ledger_repo.get(txn.id).matched_item_id == item_id

    def test_mark_matched_missing(
        self, ledger_repo: SQLiteLedgerTransactionRepository
    ) -> None:
        with pytest.raises(TransactionNotFoundError):
            ledger_repo.mark_matched(uuid4(), uuid4())

    def test_clear_matched(self, ledger_repo: SQLiteLedgerTransactionRepository) -> None:
        txn = make_txn(uuid4(), date(2024, 1, 5), "1.00")
        ledger_repo.add(txn)
        ledger_repo.mark_matched(txn.id, uuid4())

        ledger_repo.clear_matched(txn.id)

        assert not ledger_repo.get(txn.id).is_matched


class TestSQLiteReconciliationSessionRepository:
    def test_round_trip_with_children(
        self,
        session_repo: SQLiteReconciliationSessionRepository,
        session: ReconciliationSession,
    ) -> None:
        matched = make_item(session.id, date(2024, 1, 5), "-150.00", "Office", line_number=1)
        matched.reference = "CHK 12"
        matched.mark_matched(uuid4(), 87, MatchPass.SCORED)
        suggested = make_item(session.id, date(2024, 1, 6), "-20.00", line_number=2)
        suggested.record_suggestion(uuid4(), 41)
        session.items.extend([matched, suggested])
        session.adjustments.append(
            BalanceAdjustment(session_id=session.id, amount=Decimal("0.50"), description="fee")
        )

        session_repo.add(session)
        loaded = session_repo.get(session.id)

        assert loaded is not None
        assert loaded.statement_ending_balance == Decimal("1000.00")
        assert loaded.status == ReconciliationSessionStatus.DRAFT
        assert [i.id for i in loaded.items] == [matched.id, suggested.id]
        first, second = loaded.items
        assert first.reference == "CHK 12"
        assert first.matched_transaction_id == matched.matched_transaction_id
        assert first.match_confidence == 87
        assert first.match_pass == MatchPass.SCORED
        assert first.matched_at == matched.matched_at
        assert second.suggested_transaction_id == suggested.suggested_transaction_id
        assert second.suggestion_score == 41
        assert loaded.adjustments[0].amount == Decimal("0.50")
        assert loaded.adjustments[0].description == "fee"

    def test_update_changes_status_items_and_adjustments(
        self,
        session_repo: SQLiteReconciliationSessionRepository,
        session: ReconciliationSession,
    ) -> None:
        item = make_item(session.id, date(2024, 1, 5), "-150.00")
        adjustment = BalanceAdjustment(session_id=session.id, amount=Decimal("1.00"))
        session.items.append(item)
        session.adjustments.append(adjustment)
        session_repo.add(session)

        session.transition_to(ReconciliationSessionStatus.IN_PROGRESS)
        item.status = StatementItemStatus.IGNORED
        session.adjustments.remove(adjustment)
        session_repo.update(session)

        loaded = session_repo.get(session.id)
        assert loaded.status == ReconciliationSessionStatus.IN_PROGRESS
        assert loaded.items[0].status == StatementItemStatus.IGNORED
        assert loaded.adjustments == []

    def test_get_missing(self, session_repo: SQLiteReconciliationSessionRepository) -> None:
        assert session_repo.get(uuid4()) is None

    def test_list_by_account_and_status(
        self, session_repo: SQLiteReconciliationSessionRepository
    ) -> None:
        account = uuid4()
        draft = ReconciliationSession(
            account_id=account, period_start=date(2024, 1, 1), period_end=date(2024, 1, 31)
        )
        active = ReconciliationSession(
            account_id=account,
            period_start=date(2024, 2, 1),
            period_end=date(2024, 2, 29),
            status=ReconciliationSessionStatus.IN_PROGRESS,
        )
        other = ReconciliationSession(
            account_id=uuid4(), period_start=date(2024, 1, 1), period_end=date(2024, 1, 31)
        )
        for s in (draft, active, other):
            session_repo.add(s)

        assert {s.id for s in session_repo.list_by_account(account)} == {draft.id, active.id}
        assert [s.id for s in session_repo.list_all(ReconciliationSessionStatus.IN_PROGRESS)] == [
            active.id
        ]
        assert len(session_repo.list_all()) == 3
