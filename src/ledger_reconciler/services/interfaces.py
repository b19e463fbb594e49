from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from ledger_reconciler.domain.reconciliation import (
    BalanceAdjustment,
    ReconciliationSession,
    ReconciliationSessionStatus,
    StatementItem,
    StatementItemStatus,
)
from ledger_reconciler.services.matching import MatchSuggestion


@dataclass(frozen=True)
class RowError:
    row_number: int
    error_code: str
    message: str


@dataclass
class UploadResult:
    items_created: int
    row_errors: list[RowError] = field(default_factory=list)
    items: list[StatementItem] = field(default_factory=list)


@dataclass
class AutoMatchResult:
    matched_count: int = 0
    suggestions: list[MatchSuggestion] = field(default_factory=list)
    exact_count: int = 0
    scored_count: int = 0
    conflicts_skipped: int = 0


@dataclass
class SessionSummary:
    session_id: UUID
    status: ReconciliationSessionStatus
    statement_ending_balance: Decimal | None
    book_ending_balance: Decimal
    adjustments_total: Decimal
    difference: Decimal | None
    is_balanced: bool
    item_count: int
    matched_count: int
    unmatched_count: int
    ignored_count: int

    @property
    def match_rate(self) -> float:
        if self.item_count == 0:
            return 0.0
        return self.matched_count / self.item_count


@dataclass(frozen=True)
class ItemFilter:
    status: StatementItemStatus | None = None
    limit: int | None = None
    offset: int = 0


class ReconciliationService(ABC):
    @abstractmethod
    def create_session(
        self,
        account_id: UUID,
        period_start: date,
        period_end: date,
        statement_ending_balance: Decimal | str | None = None,
    ) -> ReconciliationSession:
        pass

    @abstractmethod
    def get_session(self, session_id: UUID) -> ReconciliationSession:
        pass

    @abstractmethod
    def list_sessions(
        self,
        account_id: UUID | None = None,
        status: ReconciliationSessionStatus | None = None,
    ) -> list[ReconciliationSession]:
        pass

    @abstractmethod
    def get_session_summary(self, session_id: UUID) -> SessionSummary:
        pass

    @abstractmethod
    def upload_statement(
        self,
        session_id: UUID,
        rows: Sequence[Mapping[str, Any]],
        timeout: float | None = None,
    ) -> UploadResult:
        pass

    @abstractmethod
    def run_auto_match(self, session_id: UUID) -> AutoMatchResult:
        pass

    @abstractmethod
    def manual_match(
        self,
        session_id: UUID,
        item_id: UUID,
        transaction_id: UUID,
        timeout: float | None = None,
    ) -> StatementItem:
        pass

    @abstractmethod
    def unmatch(
        self, session_id: UUID, item_id: UUID, timeout: float | None = None
    ) -> StatementItem:
        pass

    @abstractmethod
    def ignore_item(
        self, session_id: UUID, item_id: UUID, timeout: float | None = None
    ) -> StatementItem:
        pass

    @abstractmethod
    def restore_item(
        self, session_id: UUID, item_id: UUID, timeout: float | None = None
    ) -> StatementItem:
        pass

    @abstractmethod
    def list_items(
        self, session_id: UUID, item_filter: ItemFilter | None = None
    ) -> list[StatementItem]:
        pass

    @abstractmethod
    def set_statement_balance(
        self, session_id: UUID, balance: Decimal | str
    ) -> ReconciliationSession:
        pass

    @abstractmethod
    def add_adjustment(
        self, session_id: UUID, amount: Decimal | str, description: str = ""
    ) -> BalanceAdjustment:
        pass

    @abstractmethod
    def remove_adjustment(self, session_id: UUID, adjustment_id: UUID) -> None:
        pass

    @abstractmethod
    def complete_session(
        self, session_id: UUID, acknowledge_discrepancy: bool = False
    ) -> ReconciliationSession:
        pass

    @abstractmethod
    def rollback_session(self, session_id: UUID) -> ReconciliationSession:
        pass

    @abstractmethod
    def archive_session(self, session_id: UUID) -> ReconciliationSession:
        pass
