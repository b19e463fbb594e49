"""Per-session exclusivity and operation deadlines."""

import contextlib
import threading
import time
from collections.abc import Iterator
from uuid import UUID

from ledger_reconciler.exceptions import OperationTimeoutError, SessionBusyError
from ledger_reconciler.logging_config import get_logger

logger = get_logger(__name__)


class SessionLockRegistry:
    """One lock per session id; different sessions never block each other."""

    def __init__(self, timeout_seconds: float = 10.0) -> None:
        self._timeout_seconds = timeout_seconds
        self._locks: dict[UUID, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, session_id: UUID) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            return lock

    @contextlib.contextmanager
    def hold(
        self,
        session_id: UUID,
        timeout: float | None = None,
        deadline: "Deadline | None" = None,
    ) -> Iterator[None]:
        """Hold the session lock, raising SessionBusyError after the timeout.

        With a deadline, the wait never outlasts its remaining budget and
        running out of budget raises OperationTimeoutError instead.
        """
        wait = self._timeout_seconds if timeout is None else timeout
        bounded = deadline is not None and deadline.remaining < wait
        if bounded:
            wait = deadline.remaining
        lock = self._lock_for(session_id)
        if not lock.acquire(timeout=wait):
            logger.warning(
                "session_lock_timeout", session_id=str(session_id), waited_seconds=wait
            )
            if bounded:
                raise OperationTimeoutError(deadline.operation, deadline.timeout_seconds)
            raise SessionBusyError(session_id, wait)
        try:
            yield
        finally:
            lock.release()

    def is_locked(self, session_id: UUID) -> bool:
        return self._lock_for(session_id).locked()


class Deadline:
    """Wall-clock budget for one request-level operation."""

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        self._expires_at = time.monotonic() + timeout_seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def check(self) -> None:
        """Raise OperationTimeoutError once the budget is spent."""
        if self.expired:
            raise OperationTimeoutError(self.operation, self.timeout_seconds)
