"""API routes for Ledger Reconciler.

Handlers are plain functions so FastAPI runs them in its worker threadpool;
the service blocks on session locks and database I/O.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Response, status

from ledger_reconciler.api.schemas import (
    AdjustmentRequest,
    AdjustmentResponse,
    AutoMatchResponse,
    CompleteSessionRequest,
    CreateSessionRequest,
    HealthResponse,
    ItemListResponse,
    ManualMatchRequest,
    MatchSuggestionResponse,
    RowErrorResponse,
    SessionListResponse,
    SessionResponse,
    SessionSummaryResponse,
    StatementBalanceRequest,
    StatementItemResponse,
    UploadStatementRequest,
    UploadStatementResponse,
)
from ledger_reconciler.config import get_settings
from ledger_reconciler.container import get_reconciliation_service
from ledger_reconciler.domain.reconciliation import (
    BalanceAdjustment,
    ReconciliationSession,
    ReconciliationSessionStatus,
    StatementItem,
    StatementItemStatus,
)
from ledger_reconciler.services.interfaces import ItemFilter, ReconciliationService

# Create routers
health_router = APIRouter(tags=["health"])
reconciliation_router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])

Service = Annotated[ReconciliationService, Depends(get_reconciliation_service)]
TimeoutQuery = Annotated[float | None, Query(gt=0)]


# Helper functions
def _item_to_response(item: StatementItem) -> StatementItemResponse:
    """Convert StatementItem domain object to response schema."""
    return StatementItemResponse(
        id=item.id,
        session_id=item.session_id,
        line_number=item.line_number,
        item_date=item.item_date,
        description=item.description,
        amount=str(item.amount),
        reference=item.reference,
        status=item.status.value,
        matched_transaction_id=item.matched_transaction_id,
        match_confidence=item.match_confidence,
        match_pass=item.match_pass.value if item.match_pass else None,
        suggested_transaction_id=item.suggested_transaction_id,
        suggestion_score=item.suggestion_score,
        matched_at=item.matched_at,
    )


def _adjustment_to_response(adjustment: BalanceAdjustment) -> AdjustmentResponse:
    return AdjustmentResponse(
        id=adjustment.id,
        session_id=adjustment.session_id,
        amount=str(adjustment.amount),
        description=adjustment.description,
        created_at=adjustment.created_at,
    )


def _session_to_response(session: ReconciliationSession) -> SessionResponse:
    """Convert ReconciliationSession domain object to response schema."""
    return SessionResponse(
        id=session.id,
        account_id=session.account_id,
        period_start=session.period_start,
        period_end=session.period_end,
        statement_ending_balance=str(session.statement_ending_balance)
        if session.statement_ending_balance is not None
        else None,
        book_ending_balance=str(session.book_ending_balance),
        difference=str(session.difference) if session.difference is not None else None,
        status=session.status.value,
        created_at=session.created_at,
        updated_at=session.updated_at,
        completed_at=session.completed_at,
        archived_at=session.archived_at,
        rolled_back_at=session.rolled_back_at,
        rollback_count=session.rollback_count,
        items=[_item_to_response(i) for i in session.items],
        adjustments=[_adjustment_to_response(a) for a in session.adjustments],
    )


# Health endpoint
@health_router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=get_settings().app_version)


# Session endpoints
@reconciliation_router.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_session(payload: CreateSessionRequest, service: Service) -> SessionResponse:
    """Create a new reconciliation session in draft status."""
    session = service.create_session(
        account_id=payload.account_id,
        period_start=payload.period_start,
        period_end=payload.period_end,
        statement_ending_balance=payload.statement_ending_balance,
    )
    return _session_to_response(session)


@reconciliation_router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    service: Service,
    account_id: UUID | None = None,
    session_status: Annotated[
        ReconciliationSessionStatus | None, Query(alias="status")
    ] = None,
) -> SessionListResponse:
    """List sessions, optionally filtered by account and status."""
    sessions = service.list_sessions(account_id=account_id, status=session_status)
    return SessionListResponse(
        sessions=[_session_to_response(s) for s in sessions],
        total=len(sessions),
    )


@reconciliation_router.get("/sessions/{session_id}", response_model=SessionResponse)
def get_session(session_id: UUID, service: Service) -> SessionResponse:
    return _session_to_response(service.get_session(session_id))


@reconciliation_router.get(
    "/sessions/{session_id}/summary", response_model=SessionSummaryResponse
)
def get_session_summary(session_id: UUID, service: Service) -> SessionSummaryResponse:
    """Balance figures and item counts for a session."""
    summary = service.get_session_summary(session_id)
    return SessionSummaryResponse(
        session_id=summary.session_id,
        status=summary.status.value,
        statement_ending_balance=str(summary.statement_ending_balance)
        if summary.statement_ending_balance is not None
        else None,
        book_ending_balance=str(summary.book_ending_balance),
        adjustments_total=str(summary.adjustments_total),
        difference=str(summary.difference) if summary.difference is not None else None,
        is_balanced=summary.is_balanced,
        item_count=summary.item_count,
        matched_count=summary.matched_count,
        unmatched_count=summary.unmatched_count,
        ignored_count=summary.ignored_count,
        match_rate=summary.match_rate,
    )


# Statement upload
@reconciliation_router.post(
    "/sessions/{session_id}/statement", response_model=UploadStatementResponse
)
def upload_statement(
    session_id: UUID, payload: UploadStatementRequest, service: Service
) -> UploadStatementResponse:
    """Upload normalized statement rows. Bad rows come back as row errors."""
    rows = [row.model_dump(exclude_none=True) for row in payload.rows]
    result = service.upload_statement(session_id, rows, timeout=payload.timeout_seconds)
    return UploadStatementResponse(
        items_created=result.items_created,
        row_errors=[
            RowErrorResponse(
                row_number=e.row_number, error_code=e.error_code, message=e.message
            )
            for e in result.row_errors
        ],
        items=[_item_to_response(i) for i in result.items],
    )


# Matching
@reconciliation_router.post(
    "/sessions/{session_id}/auto-match", response_model=AutoMatchResponse
)
def run_auto_match(session_id: UUID, service: Service) -> AutoMatchResponse:
    result = service.run_auto_match(session_id)
    return AutoMatchResponse(
        matched_count=result.matched_count,
        exact_count=result.exact_count,
        scored_count=result.scored_count,
        conflicts_skipped=result.conflicts_skipped,
        suggestions=[
            MatchSuggestionResponse(
                item_id=s.item_id, transaction_id=s.transaction_id, score=s.score
            )
            for s in result.suggestions
        ],
    )


@reconciliation_router.get(
    "/sessions/{session_id}/items", response_model=ItemListResponse
)
def list_items(
    session_id: UUID,
    service: Service,
    item_status: Annotated[StatementItemStatus | None, Query(alias="status")] = None,
    limit: Annotated[int | None, Query(ge=1, le=1000)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> ItemListResponse:
    """List statement items in line order."""
    total = len(service.list_items(session_id, ItemFilter(status=item_status)))
    items = service.list_items(
        session_id, ItemFilter(status=item_status, limit=limit, offset=offset)
    )
    return ItemListResponse(
        items=[_item_to_response(i) for i in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@reconciliation_router.post(
    "/sessions/{session_id}/items/{item_id}/match",
    response_model=StatementItemResponse,
)
def match_item(
    session_id: UUID, item_id: UUID, payload: ManualMatchRequest, service: Service
) -> StatementItemResponse:
    """Manually match an item to a ledger transaction."""
    item = service.manual_match(
        session_id, item_id, payload.transaction_id, timeout=payload.timeout_seconds
    )
    return _item_to_response(item)


@reconciliation_router.post(
    "/sessions/{session_id}/items/{item_id}/unmatch",
    response_model=StatementItemResponse,
)
def unmatch_item(
    session_id: UUID,
    item_id: UUID,
    service: Service,
    timeout_seconds: TimeoutQuery = None,
) -> StatementItemResponse:
    return _item_to_response(service.unmatch(session_id, item_id, timeout=timeout_seconds))


@reconciliation_router.post(
    "/sessions/{session_id}/items/{item_id}/ignore",
    response_model=StatementItemResponse,
)
def ignore_item(
    session_id: UUID,
    item_id: UUID,
    service: Service,
    timeout_seconds: TimeoutQuery = None,
) -> StatementItemResponse:
    return _item_to_response(
        service.ignore_item(session_id, item_id, timeout=timeout_seconds)
    )


@reconciliation_router.post(
    "/sessions/{session_id}/items/{item_id}/restore",
    response_model=StatementItemResponse,
)
def restore_item(
    session_id: UUID,
    item_id: UUID,
    service: Service,
    timeout_seconds: TimeoutQuery = None,
) -> StatementItemResponse:
    return _item_to_response(
        service.restore_item(session_id, item_id, timeout=timeout_seconds)
    )


# Balance
@reconciliation_router.put(
    "/sessions/{session_id}/statement-balance", response_model=SessionResponse
)
def set_statement_balance(
    session_id: UUID, payload: StatementBalanceRequest, service: Service
) -> SessionResponse:
    return _session_to_response(service.set_statement_balance(session_id, payload.balance))


@reconciliation_router.post(
    "/sessions/{session_id}/adjustments",
    response_model=AdjustmentResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_adjustment(
    session_id: UUID, payload: AdjustmentRequest, service: Service
) -> AdjustmentResponse:
    """Add a manual amount counted toward the book balance."""
    adjustment = service.add_adjustment(session_id, payload.amount, payload.description)
    return _adjustment_to_response(adjustment)


@reconciliation_router.delete(
    "/sessions/{session_id}/adjustments/{adjustment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def remove_adjustment(session_id: UUID, adjustment_id: UUID, service: Service) -> Response:
    service.remove_adjustment(session_id, adjustment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Lifecycle
@reconciliation_router.post(
    "/sessions/{session_id}/complete", response_model=SessionResponse
)
def complete_session(
    session_id: UUID,
    service: Service,
    payload: Annotated[CompleteSessionRequest | None, Body()] = None,
) -> SessionResponse:
    """Complete a session, or mark a discrepancy when acknowledged."""
    acknowledge = payload.acknowledge_discrepancy if payload else False
    return _session_to_response(
        service.complete_session(session_id, acknowledge_discrepancy=acknowledge)
    )


@reconciliation_router.post(
    "/sessions/{session_id}/rollback", response_model=SessionResponse
)
def rollback_session(session_id: UUID, service: Service) -> SessionResponse:
    """Clear all matches of a closed session and reopen it."""
    return _session_to_response(service.rollback_session(session_id))


@reconciliation_router.post(
    "/sessions/{session_id}/archive", response_model=SessionResponse
)
def archive_session(session_id: UUID, service: Service) -> SessionResponse:
    return _session_to_response(service.archive_session(session_id))
