from ledger_reconciler.domain.reconciliation import (
    BalanceAdjustment,
    MatchCandidate,
    ReconciliationSession,
    ReconciliationSessionStatus,
    StatementItem,
    StatementItemStatus,
)
from ledger_reconciler.domain.transactions import LedgerTransaction
from ledger_reconciler.domain.value_objects import parse_amount, parse_date

__all__ = [
    "BalanceAdjustment",
    "LedgerTransaction",
    "MatchCandidate",
    "ReconciliationSession",
    "ReconciliationSessionStatus",
    "StatementItem",
    "StatementItemStatus",
    "parse_amount",
    "parse_date",
]

__version__ = "0.1.0"
