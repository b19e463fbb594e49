from ledger_reconciler.domain.reconciliation import (
    BalanceAdjustment,
    MatchCandidate,
    MatchPass,
    ReconciliationSession,
    ReconciliationSessionStatus,
    ScoreBreakdown,
    StatementItem,
    StatementItemStatus,
)
from ledger_reconciler.domain.transactions import LedgerTransaction
from ledger_reconciler.domain.value_objects import (
    CENT,
    ZERO,
    Direction,
    parse_amount,
    parse_date,
    quantize_amount,
)

__all__ = [
    "BalanceAdjustment",
    "CENT",
    "Direction",
    "LedgerTransaction",
    "MatchCandidate",
    "MatchPass",
    "ReconciliationSession",
    "ReconciliationSessionStatus",
    "ScoreBreakdown",
    "StatementItem",
    "StatementItemStatus",
    "ZERO",
    "parse_amount",
    "parse_date",
    "quantize_amount",
]
