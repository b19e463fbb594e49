"""PostgreSQL implementations of repository interfaces."""

from __future__ import annotations

import contextlib
import threading
from collections.abc import Iterator
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import psycopg2
import psycopg2.extras

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


def _uuid(value: str | None) -> UUID | None:
    return UUID(value) if value else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class PostgresDatabase(UnitOfWork):
    """PostgreSQL database connection manager."""

    def __init__(self, connection_string: str) -> None:
        self._connection_string = connection_string
        self._connection: psycopg2.extensions.connection | None = None
        self._lock = threading.RLock()
        self._depth = 0

    def get_connection(self) -> psycopg2.extensions.connection:
        """Get or create the database connection."""
        if self._connection is None or self._connection.closed:
            self._connection = psycopg2.connect(
                self._connection_string,
                cursor_factory=psycopg2.extras.RealDictCursor,
            )
        return self._connection

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextlib.contextmanager
    def transaction(self) -> Iterator[psycopg2.extensions.connection]:
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
                except psycopg2.Error as e:
                    conn.rollback()
                    raise DatabaseError(f"Commit failed: {e}") from e

    def initialize(self) -> None:
        """Create all database tables."""
        with self.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger_transactions (
                    id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    transaction_date DATE NOT NULL,
                    amount NUMERIC(18, 2) NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    matched_item_id TEXT,
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_ledger_transactions_account_date
                    ON ledger_transactions(account_id, transaction_date);

                CREATE TABLE IF NOT EXISTS reconciliation_sessions (
                    id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    period_start DATE NOT NULL,
                    period_end DATE NOT NULL,
                    statement_ending_balance NUMERIC(18, 2),
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

                CREATE TABLE IF NOT EXISTS statement_items (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL REFERENCES reconciliation_sessions(id),
                    line_number INTEGER NOT NULL,
                    item_date DATE NOT NULL,
                    amount NUMERIC(18, 2) NOT NULL,
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
                    UNIQUE(session_id, line_number)
                );

                CREATE TABLE IF NOT EXISTS balance_adjustments (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL REFERENCES reconciliation_sessions(id),
                    amount NUMERIC(18, 2) NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL
                );
                """
            )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None and not self._connection.closed:
                self._connection.close()
            self._connection = None


class PostgresLedgerTransactionRepository(LedgerTransactionRepository):
    """PostgreSQL implementation of LedgerTransactionRepository."""

    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    def add(self, txn: LedgerTransaction) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO ledger_transactions (id, account_id, transaction_date, amount,
                                                 description, matched_item_id, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    str(txn.id),
                    str(txn.account_id),
                    txn.transaction_date,
                    txn.amount,
                    txn.description,
                    str(txn.matched_item_id) if txn.matched_item_id else None,
                    txn.created_at.isoformat(),
                ),
            )

    def get(self, txn_id: UUID) -> LedgerTransaction | None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                "SELECT * FROM ledger_transactions WHERE id = %s", (str(txn_id),)
            )
            row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_transaction(row)

    def find_transactions(
        self,
        account_id: UUID,
        start_date: date,
        end_date: date,
    ) -> list[LedgerTransaction]:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT * FROM ledger_transactions
                WHERE account_id = %s AND transaction_date BETWEEN %s AND %s
                ORDER BY transaction_date, id
                """,
                (str(account_id), start_date, end_date),
            )
            rows = cur.fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def list_by_account(self, account_id: UUID) -> list[LedgerTransaction]:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                "SELECT * FROM ledger_transactions WHERE account_id = %s "
                "ORDER BY transaction_date, id",
                (str(account_id),),
            )
            rows = cur.fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def mark_matched(self, txn_id: UUID, item_id: UUID) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                UPDATE ledger_transactions SET matched_item_id = %s
                WHERE id = %s AND (matched_item_id IS NULL OR matched_item_id = %s)
                """,
                (str(item_id), str(txn_id), str(item_id)),
            )
            if cur.rowcount == 1:
                return
            cur.execute(
                "SELECT matched_item_id FROM ledger_transactions WHERE id = %s",
                (str(txn_id),),
            )
            row = cur.fetchone()
        if row is None:
            raise TransactionNotFoundError(txn_id)
        raise TransactionAlreadyMatchedError(txn_id, row["matched_item_id"])

    def clear_matched(self, txn_id: UUID) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                "UPDATE ledger_transactions SET matched_item_id = NULL WHERE id = %s",
                (str(txn_id),),
            )

    def _row_to_transaction(self, row: dict[str, Any]) -> LedgerTransaction:
        return LedgerTransaction(
            account_id=UUID(row["account_id"]),
            transaction_date=row["transaction_date"],
            amount=Decimal(row["amount"]),
            description=row["description"],
            id=UUID(row["id"]),
            matched_item_id=_uuid(row["matched_item_id"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )


class PostgresReconciliationSessionRepository(ReconciliationSessionRepository):
    """PostgreSQL implementation of ReconciliationSessionRepository."""

    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    def add(self, session: ReconciliationSession) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO reconciliation_sessions (id, account_id, period_start, period_end,
                                                      statement_ending_balance, status,
                                                      created_at, updated_at, completed_at,
                                                      archived_at, rolled_back_at,
                                                      rollback_count)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                self._session_params(session),
            )
            self._save_children(cur, session)

    def get(self, session_id: UUID) -> ReconciliationSession | None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                "SELECT * FROM reconciliation_sessions WHERE id = %s",
                (str(session_id),),
            )
            row = cur.fetchone()
            if row is None:
                return None
            return self._row_to_session(cur, row)

    def update(self, session: ReconciliationSession) -> None:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                """
                UPDATE reconciliation_sessions SET
                    account_id = %s,
                    period_start = %s,
                    period_end = %s,
                    statement_ending_balance = %s,
                    status = %s,
                    created_at = %s,
                    updated_at = %s,
                    completed_at = %s,
                    archived_at = %s,
                    rolled_back_at = %s,
                    rollback_count = %s
                WHERE id = %s
                """,
                (*self._session_params(session)[1:], str(session.id)),
            )
            self._save_children(cur, session)

    def list_by_account(self, account_id: UUID) -> list[ReconciliationSession]:
        with self._db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                "SELECT * FROM reconciliation_sessions WHERE account_id = %s "
                "ORDER BY created_at, id",
                (str(account_id),),
            )
            rows = cur.fetchall()
            return [self._row_to_session(cur, row) for row in rows]

    def list_all(
        self, status: ReconciliationSessionStatus | None = None
    ) -> list[ReconciliationSession]:
        with self._db.transaction() as conn, conn.cursor() as cur:
            if status is None:
                cur.execute(
                    "SELECT * FROM reconciliation_sessions ORDER BY created_at, id"
                )
            else:
                cur.execute(
                    "SELECT * FROM reconciliation_sessions WHERE status = %s "
                    "ORDER BY created_at, id",
                    (status.value,),
                )
            rows = cur.fetchall()
            return [self._row_to_session(cur, row) for row in rows]

    def _session_params(self, session: ReconciliationSession) -> tuple:
        return (
            str(session.id),
            str(session.account_id),
            session.period_start,
            session.period_end,
            session.statement_ending_balance,
            session.status.value,
            session.created_at.isoformat(),
            session.updated_at.isoformat(),
            session.completed_at.isoformat() if session.completed_at else None,
            session.archived_at.isoformat() if session.archived_at else None,
            session.rolled_back_at.isoformat() if session.rolled_back_at else None,
            session.rollback_count,
        )

    def _save_children(self, cur: Any, session: ReconciliationSession) -> None:
        for item in session.items:
            cur.execute(
                """
                INSERT INTO statement_items (id, session_id, line_number, item_date, amount,
                                             description, reference, status,
                                             matched_transaction_id, match_confidence,
                                             match_pass, suggested_transaction_id,
                                             suggestion_score, matched_at, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    status = EXCLUDED.status,
                    matched_transaction_id = EXCLUDED.matched_transaction_id,
                    match_confidence = EXCLUDED.match_confidence,
                    match_pass = EXCLUDED.match_pass,
                    suggested_transaction_id = EXCLUDED.suggested_transaction_id,
                    suggestion_score = EXCLUDED.suggestion_score,
                    matched_at = EXCLUDED.matched_at
                """,
                (
                    str(item.id),
                    str(session.id),
                    item.line_number,
                    item.item_date,
                    item.amount,
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
                    item.matched_at.isoformat() if item.matched_at else None,
                    item.created_at.isoformat(),
                ),
            )
        cur.execute(
            "DELETE FROM balance_adjustments WHERE session_id = %s", (str(session.id),)
        )
        for adjustment in session.adjustments:
            cur.execute(
                """
                INSERT INTO balance_adjustments (id, session_id, amount, description,
                                                 created_at)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (
                    str(adjustment.id),
                    str(session.id),
                    adjustment.amount,
                    adjustment.description,
                    adjustment.created_at.isoformat(),
                ),
            )

    def _row_to_session(self, cur: Any, row: dict[str, Any]) -> ReconciliationSession:
        cur.execute(
            "SELECT * FROM statement_items WHERE session_id = %s ORDER BY line_number",
            (row["id"],),
        )
        items = [self._row_to_item(r) for r in cur.fetchall()]
        cur.execute(
            "SELECT * FROM balance_adjustments WHERE session_id = %s "
            "ORDER BY created_at, id",
            (row["id"],),
        )
        adjustments = [self._row_to_adjustment(r) for r in cur.fetchall()]

        return ReconciliationSession(
            account_id=UUID(row["account_id"]),
            period_start=row["period_start"],
            period_end=row["period_end"],
            id=UUID(row["id"]),
            statement_ending_balance=Decimal(row["statement_ending_balance"])
            if row["statement_ending_balance"] is not None
            else None,
            status=ReconciliationSessionStatus(row["status"]),
            items=items,
            adjustments=adjustments,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            completed_at=_dt(row["completed_at"]),
            archived_at=_dt(row["archived_at"]),
            rolled_back_at=_dt(row["rolled_back_at"]),
            rollback_count=row["rollback_count"],
        )

    def _row_to_item(self, row: dict[str, Any]) -> StatementItem:
        return StatementItem(
            session_id=UUID(row["session_id"]),
            item_date=row["item_date"],
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

    def _row_to_adjustment(self, row: dict[str, Any]) -> BalanceAdjustment:
        return BalanceAdjustment(
            session_id=UUID(row["session_id"]),
            amount=Decimal(row["amount"]),
            id=UUID(row["id"]),
            description=row["description"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
