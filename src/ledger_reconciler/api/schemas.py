"""Pydantic v2 schemas for API request/response models.

Monetary amounts travel as strings so no float conversion ever touches them.
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# Health check
class HealthResponse(BaseModel):
    """Schema for health check response."""

    status: str
    version: str = "0.1.0"


# Session Schemas
class CreateSessionRequest(BaseModel):
    """Schema for creating a reconciliation session."""

    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: UUID
    period_start: date
    period_end: date
    statement_ending_balance: str | None = None


class StatementItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    line_number: int
    item_date: date
    description: str
    amount: str
    reference: str
    status: str
    matched_transaction_id: UUID | None
    match_confidence: int | None
    match_pass: str | None
    suggested_transaction_id: UUID | None
    suggestion_score: int | None
    matched_at: datetime | None


class AdjustmentResponse(BaseModel):
    id: UUID
    session_id: UUID
    amount: str
    description: str
    created_at: datetime


class SessionResponse(BaseModel):
    """Schema for reconciliation session response."""

    id: UUID
    account_id: UUID
    period_start: date
    period_end: date
    statement_ending_balance: str | None
    book_ending_balance: str
    difference: str | None
    status: str
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None
    archived_at: datetime | None
    rolled_back_at: datetime | None
    rollback_count: int
    items: list[StatementItemResponse]
    adjustments: list[AdjustmentResponse]


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]
    total: int


class SessionSummaryResponse(BaseModel):
    """Schema for session summary response."""

    session_id: UUID
    status: str
    statement_ending_balance: str | None
    book_ending_balance: str
    adjustments_total: str
    difference: str | None
    is_balanced: bool
    item_count: int
    matched_count: int
    unmatched_count: int
    ignored_count: int
    match_rate: float


# Statement upload
class StatementRowRequest(BaseModel):
    """One extracted statement row. Field values are validated per row."""

    model_config = ConfigDict(str_strip_whitespace=True)

    date: str | None = None
    amount: str | None = None
    description: str | None = None
    reference: str | None = None
    direction: str | None = None


class UploadStatementRequest(BaseModel):
    rows: list[StatementRowRequest]
    timeout_seconds: float | None = Field(default=None, gt=0)


class RowErrorResponse(BaseModel):
    row_number: int
    error_code: str
    message: str


class UploadStatementResponse(BaseModel):
    items_created: int
    row_errors: list[RowErrorResponse]
    items: list[StatementItemResponse]


# Matching
class MatchSuggestionResponse(BaseModel):
    item_id: UUID
    transaction_id: UUID | None
    score: int | None


class AutoMatchResponse(BaseModel):
    matched_count: int
    exact_count: int
    scored_count: int
    conflicts_skipped: int
    suggestions: list[MatchSuggestionResponse]


class ManualMatchRequest(BaseModel):
    transaction_id: UUID
    timeout_seconds: float | None = Field(default=None, gt=0)


class ItemListResponse(BaseModel):
    """Schema for paginated item list response."""

    items: list[StatementItemResponse]
    total: int
    limit: int | None
    offset: int


# Balance
class StatementBalanceRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    balance: str = Field(..., min_length=1)


class AdjustmentRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: str = Field(..., min_length=1)
    description: str = Field(default="", max_length=500)


class CompleteSessionRequest(BaseModel):
    acknowledge_discrepancy: bool = False
