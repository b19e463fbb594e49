from ledger_reconciler.services.balance import BalanceCheck, BalanceReconciler
from ledger_reconciler.services.candidates import CandidateGenerator, CandidatePool
from ledger_reconciler.services.concurrency import Deadline, SessionLockRegistry
from ledger_reconciler.services.interfaces import (
    AutoMatchResult,
    ItemFilter,
    ReconciliationService,
    RowError,
    SessionSummary,
    UploadResult,
)
from ledger_reconciler.services.matching import (
    MatchAssignment,
    MatchingEngine,
    MatchPlan,
    MatchSuggestion,
)
from ledger_reconciler.services.normalizer import (
    NormalizedStatement,
    StatementNormalizer,
)
from ledger_reconciler.services.reconciliation import ReconciliationServiceImpl
from ledger_reconciler.services.scoring import (
    MatchScorer,
    WeightedMatchScorer,
    jaccard_similarity,
    tokenize,
)

__all__ = [
    "AutoMatchResult",
    "BalanceCheck",
    "BalanceReconciler",
    "CandidateGenerator",
    "CandidatePool",
    "Deadline",
    "ItemFilter",
    "MatchAssignment",
    "MatchPlan",
    "MatchScorer",
    "MatchSuggestion",
    "MatchingEngine",
    "NormalizedStatement",
    "ReconciliationService",
    "ReconciliationServiceImpl",
    "RowError",
    "SessionLockRegistry",
    "SessionSummary",
    "StatementNormalizer",
    "UploadResult",
    "WeightedMatchScorer",
    "jaccard_similarity",
    "tokenize",
]
