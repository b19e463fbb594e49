from ledger_reconciler.repositories.interfaces import (
    LedgerTransactionRepository,
    ReconciliationSessionRepository,
    UnitOfWork,
)
from ledger_reconciler.repositories.sqlite import (
    SQLiteDatabase,
    SQLiteLedgerTransactionRepository,
    SQLiteReconciliationSessionRepository,
)

__all__ = [
    "LedgerTransactionRepository",
    "ReconciliationSessionRepository",
    "UnitOfWork",
    "SQLiteDatabase",
    "SQLiteLedgerTransactionRepository",
    "SQLiteReconciliationSessionRepository",
]

# PostgreSQL support is optional - only available if psycopg2 is installed
try:
    from ledger_reconciler.repositories.postgres import (
        PostgresDatabase,
        PostgresLedgerTransactionRepository,
        PostgresReconciliationSessionRepository,
    )

    __all__ += [
        "PostgresDatabase",
        "PostgresLedgerTransactionRepository",
        "PostgresReconciliationSessionRepository",
    ]
except ImportError:
    # psycopg2 not installed, PostgreSQL repositories not available
    pass
