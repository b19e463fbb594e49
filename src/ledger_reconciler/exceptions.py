"""Domain exception hierarchy for Ledger Reconciler.

All domain-specific exceptions inherit from LedgerReconcilerError.
This allows catching all application errors with a single base class
while preserving specificity for individual error types. Each class carries
an error_code and HTTP status_code so the API can translate it directly.
"""

from typing import Any
from uuid import UUID


class LedgerReconcilerError(Exception):
    """Base exception for all Ledger Reconciler errors.

    Includes optional error_code for API responses and extra context.
    """

    error_code: str = "LRC_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(LedgerReconcilerError):
    """Raised when input has the wrong shape or an invalid value."""

    error_code = "VALIDATION_ERROR"
    status_code = 422


class MissingFieldError(ValidationError):
    """Raised when a required field is absent or empty."""

    error_code = "MISSING_FIELD"

    def __init__(self, field_name: str) -> None:
        super().__init__(
            f"Missing required field: {field_name}",
            context={"field": field_name},
        )


class InvalidAmountError(ValidationError):
    """Raised when an invalid monetary amount is provided."""

    error_code = "INVALID_AMOUNT"

    def __init__(self, amount: str, reason: str) -> None:
        super().__init__(
            f"Invalid amount '{amount}': {reason}",
            context={"amount": amount, "reason": reason},
        )


class InvalidDateError(ValidationError):
    """Raised when a date value cannot be interpreted."""

    error_code = "INVALID_DATE"

    def __init__(self, value: str, reason: str) -> None:
        super().__init__(
            f"Invalid date '{value}': {reason}",
            context={"value": value, "reason": reason},
        )


class InvalidPeriodError(ValidationError):
    """Raised when a reconciliation period ends before it starts."""

    error_code = "INVALID_PERIOD"

    def __init__(self, period_start: str, period_end: str) -> None:
        super().__init__(
            f"Period end {period_end} is before period start {period_start}",
            context={"period_start": period_start, "period_end": period_end},
        )


class MissingStatementBalanceError(ValidationError):
    """Raised when completion is attempted before a statement balance exists."""

    error_code = "MISSING_STATEMENT_BALANCE"

    def __init__(self, session_id: UUID | str) -> None:
        super().__init__(
            "Statement ending balance must be set before completing the session",
            context={"session_id": str(session_id)},
        )


class DuplicateRowError(ValidationError):
    """Raised for a statement row repeating an earlier row of the same upload."""

    error_code = "DUPLICATE_ROW"

    def __init__(self, row_number: int, first_row_number: int) -> None:
        super().__init__(
            f"Row {row_number} duplicates row {first_row_number} "
            "(same date, amount, description and reference)",
            context={"row_number": row_number, "duplicate_of": first_row_number},
        )


class InvalidDirectionError(ValidationError):
    """Raised when a row direction is not debit, withdrawal, credit or deposit."""

    error_code = "INVALID_DIRECTION"

    def __init__(self, direction: str) -> None:
        super().__init__(
            f"Unknown direction '{direction}'",
            context={"direction": direction},
        )


class AccountMismatchError(ValidationError):
    """Raised when a ledger transaction belongs to another account."""

    error_code = "ACCOUNT_MISMATCH"

    def __init__(self, transaction_id: UUID | str, account_id: UUID | str) -> None:
        super().__init__(
            f"Transaction {transaction_id} does not belong to account {account_id}",
            context={"transaction_id": str(transaction_id), "account_id": str(account_id)},
        )


class ParseError(ValidationError):
    """Raised by an upstream extractor that could not read its source."""

    error_code = "PARSE_ERROR"

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(
            f"Could not parse {source}: {reason}",
            context={"source": source, "reason": reason},
        )


# =============================================================================
# Not Found Errors
# =============================================================================


class NotFoundError(LedgerReconcilerError):
    """Base exception for unknown identifiers."""

    error_code = "NOT_FOUND"
    status_code = 404


class SessionNotFoundError(NotFoundError):
    """Raised when a reconciliation session cannot be found."""

    error_code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: UUID | str) -> None:
        super().__init__(
            f"Session not found: {session_id}",
            context={"session_id": str(session_id)},
        )


class StatementItemNotFoundError(NotFoundError):
    """Raised when a statement item is not part of the session."""

    error_code = "ITEM_NOT_FOUND"

    def __init__(self, item_id: UUID | str, session_id: UUID | str) -> None:
        super().__init__(
            f"Statement item {item_id} not found in session {session_id}",
            context={"item_id": str(item_id), "session_id": str(session_id)},
        )


class TransactionNotFoundError(NotFoundError):
    """Raised when a ledger transaction cannot be found."""

    error_code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: UUID | str) -> None:
        super().__init__(
            f"Transaction not found: {transaction_id}",
            context={"transaction_id": str(transaction_id)},
        )


class AdjustmentNotFoundError(NotFoundError):
    """Raised when a balance adjustment is not part of the session."""

    error_code = "ADJUSTMENT_NOT_FOUND"

    def __init__(self, adjustment_id: UUID | str, session_id: UUID | str) -> None:
        super().__init__(
            f"Adjustment {adjustment_id} not found in session {session_id}",
            context={
                "adjustment_id": str(adjustment_id),
                "session_id": str(session_id),
            },
        )


# =============================================================================
# Conflict Errors
# =============================================================================


class ConflictError(LedgerReconcilerError):
    """Base exception for competing claims on the same resource."""

    error_code = "CONFLICT"
    status_code = 409


class TransactionAlreadyMatchedError(ConflictError):
    """Raised when a ledger transaction is already claimed by another item."""

    error_code = "TRANSACTION_ALREADY_MATCHED"

    def __init__(
        self, transaction_id: UUID | str, matched_item_id: UUID | str | None
    ) -> None:
        super().__init__(
            f"Transaction {transaction_id} is already matched to item {matched_item_id}",
            context={
                "transaction_id": str(transaction_id),
                "matched_item_id": str(matched_item_id) if matched_item_id else None,
            },
        )


class SessionBusyError(ConflictError):
    """Raised when another mutating operation holds the session lock."""

    error_code = "SESSION_BUSY"

    def __init__(self, session_id: UUID | str, waited_seconds: float) -> None:
        super().__init__(
            f"Session {session_id} is busy with another operation",
            context={"session_id": str(session_id), "waited_seconds": waited_seconds},
        )


# =============================================================================
# Reconciliation State Errors
# =============================================================================


class ReconciliationStateError(LedgerReconcilerError):
    """Base exception for operations refused by the session lifecycle."""

    error_code = "RECONCILIATION_STATE_ERROR"
    status_code = 409


class InvalidStateTransitionError(ReconciliationStateError):
    """Raised when an operation is not permitted in the session's status."""

    error_code = "INVALID_STATE_TRANSITION"

    def __init__(self, current: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} while session is {current}",
            context={"current_status": current, "action": action},
        )


class BalanceMismatchError(ReconciliationStateError):
    """Raised when statement and book balances differ by epsilon or more."""

    error_code = "BALANCE_MISMATCH"

    def __init__(
        self, statement_balance: str, book_balance: str, difference: str
    ) -> None:
        super().__init__(
            f"Balances do not reconcile: statement {statement_balance}, "
            f"book {book_balance}, difference {difference}",
            context={
                "statement_balance": statement_balance,
                "book_balance": book_balance,
                "difference": difference,
            },
        )


class UnresolvedItemsError(ReconciliationStateError):
    """Raised when unmatched statement items remain at completion."""

    error_code = "UNRESOLVED_ITEMS"

    def __init__(self, unmatched_count: int) -> None:
        super().__init__(
            f"{unmatched_count} statement item(s) are neither matched nor ignored",
            context={"unmatched_count": unmatched_count},
        )


class StatementItemStateError(ReconciliationStateError):
    """Raised when an item's own status forbids the requested action."""

    error_code = "ITEM_STATE_ERROR"

    def __init__(self, item_id: UUID | str, status: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} item {item_id} while it is {status}",
            context={"item_id": str(item_id), "item_status": status, "action": action},
        )


# =============================================================================
# Operational Errors
# =============================================================================


class OperationTimeoutError(LedgerReconcilerError):
    """Raised when an upload or manual operation exceeds its deadline."""

    error_code = "OPERATION_TIMEOUT"
    status_code = 504

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        super().__init__(
            f"{operation} did not finish within {timeout_seconds} seconds",
            context={"operation": operation, "timeout_seconds": timeout_seconds},
        )


class DatabaseError(LedgerReconcilerError):
    """Base exception for database-related errors."""

    error_code = "DATABASE_ERROR"
    status_code = 500
