from uuid import uuid4

import pytest

from ledger_reconciler.exceptions import (
    BalanceMismatchError,
    ConflictError,
    DuplicateRowError,
    InvalidStateTransitionError,
    LedgerReconcilerError,
    NotFoundError,
    OperationTimeoutError,
    ReconciliationStateError,
    SessionBusyError,
    SessionNotFoundError,
    StatementItemStateError,
    TransactionAlreadyMatchedError,
    ValidationError,
)


class TestExceptionHierarchy:
    @pytest.mark.parametrize(
        ("error", "base", "status_code"),
        [
            (SessionNotFoundError(uuid4()), NotFoundError, 404),
            (DuplicateRowError(3, 1), ValidationError, 422),
            (TransactionAlreadyMatchedError(uuid4(), uuid4()), ConflictError, 409),
            (SessionBusyError(uuid4(), 1.0), ConflictError, 409),
            (InvalidStateTransitionError("draft", "complete"), ReconciliationStateError, 409),
            (BalanceMismatchError("1000.00", "999.50", "0.50"), ReconciliationStateError, 409),
            (StatementItemStateError(uuid4(), "matched", "ignore"), ReconciliationStateError, 409),
            (OperationTimeoutError("upload_statement", 0), LedgerReconcilerError, 504),
        ],
    )
    def test_base_and_status(
        self, error: LedgerReconcilerError, base: type, status_code: int
    ) -> None:
        assert isinstance(error, base)
        assert isinstance(error, LedgerReconcilerError)
        assert error.status_code == status_code

    def test_to_dict(self) -> None:
        session_id = uuid4()
        error = SessionNotFoundError(session_id)

        assert error.to_dict() == {
            "error": "SESSION_NOT_FOUND",
            "message": f"Session not found: {session_id}",
            "context": {"session_id": str(session_id)},
        }

    def test_overrides(self) -> None:
        error = LedgerReconcilerError("custom", error_code="CUSTOM", status_code=418)
        assert error.error_code == "CUSTOM"
        assert error.status_code == 418
        assert str(error) == "custom"

    def test_item_state_message(self) -> None:
        item_id = uuid4()
        error = StatementItemStateError(item_id, "matched", "ignore")
        assert error.message == f"Cannot ignore item {item_id} while it is matched"
