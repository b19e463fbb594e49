"""SQLite implementations of repository interfaces."""

from __future__ import annotations

import contextlib
import sqlite3
import threading
from collections.abc import Iterator
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from uuid import UUID

from ledger_reconciler.domain.reconciliation import (
    BalanceAdjustment,
    MatchPass,
    ReconciliationSession,
    ReconciliationSessionStatus,
    StatementItem,
    StatementItemStatus,
)
from ledger_reconciler.domain.transactions import LedgerTransaction
from ledger_reconciler.exceptions import (
    DatabaseError,
    TransactionAlreadyMatchedError,
    TransactionNotFoundError,
)
from ledger_reconciler.repositories.interfaces import (
    LedgerTransactionRepository,
    ReconciliationSessionRepository,
    UnitOfWork,
)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _uuid(value: str | None) -> UUID | None:
    return UUID(value) if value else None


class SQLiteDatabase(UnitOfWork):
    """SQLite database connection manager.

    One connection is shared by every repository; a re-entrant lock serializes
    access to it so request threads can share the database.
    """

    def __init__(
        self, path: str | Path = ":memory:", check_same_thread: bool = False
    ) -> None:
        self._path = str(path)
        self._check_same_thread = check_same_thread
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._depth = 0

    def get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            self._connection = sqlite3.connect(
                self._path, check_same_thread=self._check_same_thread
            )
            self._connection.row_factory = sqlite3.Row
            # Enable foreign keys
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self.get_connection()
            self._depth += 1
            try:
                yield conn
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    conn.rollback()
                raise
            self._depth -= 1
            if self._depth == 0:
                try:
                    conn.commit()
                except sqlite3.Error as e:
                    conn.rollback()
                    raise DatabaseError(f"Commit failed: {e}") from e

    def initialize(self) -> None:
        """Create all database tables."""
        with self._lock:
            conn = self.get_connection()
            conn.executescript(
                """
                -- Ledger transactions (the external store's contract)
                CREATE TABLE IF NOT EXISTS ledger_transactions (
                    id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    transaction_date TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    matched_item_id TEXT,
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_ledger_transactions_account_date
                    ON ledger_transactions(account_id, transaction_date);

                -- Reconciliation sessions
                CREATE TABLE IF NOT EXISTS reconciliation_sessions (
                    id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    period_start TEXT NOT NULL,
                    period_end TEXT NOT NULL,
                    statement_ending_balance TEXT,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT,
                    archived_at TEXT,
                    rolled_back_at TEXT,
                    rollback_count INTEGER NOT NULL DEFAULT 0
                );
                CREATE INDEX IF NOT EXISTS idx_reconciliation_sessions_account
                    ON reconciliation_sessions(account_id);

                -- Statement items
                CREATE TABLE IF NOT EXISTS statement_items (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    line_number INTEGER NOT NULL,
                    item_date TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    reference TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL,
                    matched_transaction_id TEXT,
                    match_confidence INTEGER,
                    match_pass TEXT,
                    suggested_transaction_id TEXT,
                    suggestion_score INTEGER,
                    matched_at TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE(session_id, line_number),
                    FOREIGN KEY (session_id) REFERENCES reconciliation_sessions(id)
                );
                CREATE INDEX IF NOT EXISTS idx_statement_items_session
                    ON statement_items(session_id);

                -- Balance adjustments
                CREATE TABLE IF NOT EXISTS balance_adjustments (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (session_id) REFERENCES reconciliation_sessions(id)
                );
                CREATE INDEX IF NOT EXISTS idx_balance_adjustments_session
                    ON balance_adjustments(session_id);
                """
            )
            conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


class SQLiteLedgerTransactionRepository(LedgerTransactionRepository):
    """SQLite implementation of LedgerTransactionRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, txn: LedgerTransaction) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO ledger_transactions (id, account_id, transaction_date, amount,
                                                 description, matched_item_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(txn.id),
                    str(txn.account_id),
                    txn.transaction_date.isoformat(),
                    str(txn.amount),
                    txn.description,
                    str(txn.matched_item_id) if txn.matched_item_id else None,
                    txn.created_at.isoformat(),
                ),
            )

    def get(self, txn_id: UUID) -> LedgerTransaction | None:
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM ledger_transactions WHERE id = ?", (str(txn_id),)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_transaction(row)

    def find_transactions(
        self,
        account_id: UUID,
        start_date: date,
        end_date: date,
    ) -> list[LedgerTransaction]:
        with self._db.transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM ledger_transactions
                WHERE account_id = ? AND transaction_date >= ? AND transaction_date <= ?
                ORDER BY transaction_date, id
                """,
                (str(account_id), start_date.isoformat(), end_date.isoformat()),
            ).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def list_by_account(self, account_id: UUID) -> list[LedgerTransaction]:
        with self._db.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM ledger_transactions WHERE account_id = ? "
                "ORDER BY transaction_date, id",
                (str(account_id),),
            ).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def mark_matched(self, txn_id: UUID, item_id: UUID) -> None:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE ledger_transactions SET matched_item_id = ?
                WHERE id = ? AND (matched_item_id IS NULL OR matched_item_id = ?)
                """,
                (str(item_id), str(txn_id), str(item_id)),
            )
            if cursor.rowcount == 1:
                return
            row = conn.execute(
                "SELECT matched_item_id FROM ledger_transactions WHERE id = ?",
                (str(txn_id),),
            ).fetchone()
        if row is None:
            raise TransactionNotFoundError(txn_id)
        raise TransactionAlreadyMatchedError(txn_id, row["matched_item_id"])

    def clear_matched(self, txn_id: UUID) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                "UPDATE ledger_transactions SET matched_item_id = NULL WHERE id = ?",
                (str(txn_id),),
            )

    def _row_to_transaction(self, row: sqlite3.Row) -> LedgerTransaction:
        return LedgerTransaction(
            account_id=UUID(row["account_id"]),
            transaction_date=date.fromisoformat(row["transaction_date"]),
            amount=Decimal(row["amount"]),
            description=row["description"],
            id=UUID(row["id"]),
            matched_item_id=_uuid(row["matched_item_id"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )


class SQLiteReconciliationSessionRepository(ReconciliationSessionRepository):
    """SQLite implementation of ReconciliationSessionRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, session: ReconciliationSession) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO reconciliation_sessions (id, account_id, period_start, period_end,
                                                      statement_ending_balance, status,
                                                      created_at, updated_at, completed_at,
                                                      archived_at, rolled_back_at,
                                                      rollback_count)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._session_params(session),
            )
            self._save_children(conn, session)

    def get(self, session_id: UUID) -> ReconciliationSession | None:
        with self._db.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM reconciliation_sessions WHERE id = ?", (str(session_id),)
            ).fetchone()
            if row is None:
                return None
            return self._row_to_session(conn, row)

    def update(self, session: ReconciliationSession) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE reconciliation_sessions SET
                    account_id = ?,
                    period_start = ?,
                    period_end = ?,
                    statement_ending_balance = ?,
                    status = ?,
                    created_at = ?,
                    updated_at = ?,
                    completed_at = ?,
                    archived_at = ?,
                    rolled_back_at = ?,
                    rollback_count = ?
                WHERE id = ?
                """,
                (*self._session_params(session)[1:], str(session.id)),
            )
            self._save_children(conn, session)

    def list_by_account(self, account_id: UUID) -> list[ReconciliationSession]:
        with self._db.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM reconciliation_sessions WHERE account_id = ? "
                "ORDER BY created_at, id",
                (str(account_id),),
            ).fetchall()
            return [self._row_to_session(conn, row) for row in rows]

    def list_all(
        self, status: ReconciliationSessionStatus | None = None
    ) -> list[ReconciliationSession]:
        with self._db.transaction() as conn:
            if status is None:
                rows = conn.execute(
                    "SELECT * FROM reconciliation_sessions ORDER BY created_at, id"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM reconciliation_sessions WHERE status = ? "
                    "ORDER BY created_at, id",
                    (status.value,),
                ).fetchall()
            return [self._row_to_session(conn, row) for row in rows]

    def _session_params(self, session: ReconciliationSession) -> tuple:
        return (
            str(session.id),
            str(session.account_id),
            session.period_start.isoformat(),
            session.period_end.isoformat(),
            str(session.statement_ending_balance)
            if session.statement_ending_balance is not None
            else None,
            session.status.value,
            session.created_at.isoformat(),
            session.updated_at.isoformat(),
            _iso(session.completed_at),
            _iso(session.archived_at),
            _iso(session.rolled_back_at),
            session.rollback_count,
        )

    def _save_children(
        self, conn: sqlite3.Connection, session: ReconciliationSession
    ) -> None:
        for item in session.items:
            conn.execute(
                """
                INSERT INTO statement_items (id, session_id, line_number, item_date, amount,
                                             description, reference, status,
                                             matched_transaction_id, match_confidence,
                                             match_pass, suggested_transaction_id,
                                             suggestion_score, matched_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    status = excluded.status,
                    matched_transaction_id = excluded.matched_transaction_id,
                    match_confidence = excluded.match_confidence,
                    match_pass = excluded.match_pass,
                    suggested_transaction_id = excluded.suggested_transaction_id,
                    suggestion_score = excluded.suggestion_score,
                    matched_at = excluded.matched_at
                """,
                (
                    str(item.id),
                    str(session.id),
                    item.line_number,
                    item.item_date.isoformat(),
                    str(item.amount),
                    item.description,
                    item.reference,
                    item.status.value,
                    str(item.matched_transaction_id)
                    if item.matched_transaction_id
                    else None,
                    item.match_confidence,
                    item.match_pass.value if item.match_pass else None,
                    str(item.suggested_transaction_id)
                    if item.suggested_transaction_id
                    else None,
                    item.suggestion_score,
                    _iso(item.matched_at),
                    item.created_at.isoformat(),
                ),
            )
        # Adjustments can be removed, so they are replaced wholesale
        conn.execute(
            "DELETE FROM balance_adjustments WHERE session_id = ?", (str(session.id),)
        )
        for adjustment in session.adjustments:
            conn.execute(
                """
                INSERT INTO balance_adjustments (id, session_id, amount, description,
                                                 created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    str(adjustment.id),
                    str(session.id),
                    str(adjustment.amount),
                    adjustment.description,
                    adjustment.created_at.isoformat(),
                ),
            )

    def _row_to_session(
        self, conn: sqlite3.Connection, row: sqlite3.Row
    ) -> ReconciliationSession:
        item_rows = conn.execute(
            "SELECT * FROM statement_items WHERE session_id = ? ORDER BY line_number",
            (row["id"],),
        ).fetchall()
        adjustment_rows = conn.execute(
            "SELECT * FROM balance_adjustments WHERE session_id = ? "
            "ORDER BY created_at, id",
            (row["id"],),
        ).fetchall()

        return ReconciliationSession(
            account_id=UUID(row["account_id"]),
            period_start=date.fromisoformat(row["period_start"]),
            period_end=date.fromisoformat(row["period_end"]),
            id=UUID(row["id"]),
            statement_ending_balance=Decimal(row["statement_ending_balance"])
            if row["statement_ending_balance"] is not None
            else None,
            status=ReconciliationSessionStatus(row["status"]),
            items=[self._row_to_item(r) for r in item_rows],
            adjustments=[self._row_to_adjustment(r) for r in adjustment_rows],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            completed_at=_dt(row["completed_at"]),
            archived_at=_dt(row["archived_at"]),
            rolled_back_at=_dt(row["rolled_back_at"]),
            rollback_count=row["rollback_count"],
        )

    def _row_to_item(self, row: sqlite3.Row) -> StatementItem:
        return StatementItem(
            session_id=UUID(row["session_id"]),
            item_date=date.fromisoformat(row["item_date"]),
            amount=Decimal(row["amount"]),
            line_number=row["line_number"],
            id=UUID(row["id"]),
            description=row["description"],
            reference=row["reference"],
            status=StatementItemStatus(row["status"]),
            matched_transaction_id=_uuid(row["matched_transaction_id"]),
            match_confidence=row["match_confidence"],
            match_pass=MatchPass(row["match_pass"]) if row["match_pass"] else None,
            suggested_transaction_id=_uuid(row["suggested_transaction_id"]),
            suggestion_score=row["suggestion_score"],
            matched_at=_dt(row["matched_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _row_to_adjustment(self, row: sqlite3.Row) -> BalanceAdjustment:
        return BalanceAdjustment(
            session_id=UUID(row["session_id"]),
            amount=Decimal(row["amount"]),
            id=UUID(row["id"]),
            description=row["description"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
