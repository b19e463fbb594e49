"""FastAPI application factory and dependency injection setup."""

import re
import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ledger_reconciler.api.routes import health_router, reconciliation_router
from ledger_reconciler.config import get_settings
from ledger_reconciler.container import get_container, reset_container
from ledger_reconciler.exceptions import LedgerReconcilerError
from ledger_reconciler.logging_config import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_SESSION_PATH = re.compile(r"^/reconciliation/sessions/([0-9a-fA-F-]{36})")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and open the database before serving requests."""
    settings = get_settings()
    configure_logging(settings)

    logger.info(
        "application_starting",
        version=settings.app_version,
        environment=settings.environment.value,
        database_type=settings.database_type.value,
        acceptance_threshold=settings.acceptance_threshold,
        date_slack_days=settings.date_slack_days,
    )
    _ = get_container().database

    yield

    logger.info("application_stopping")
    reset_container()


async def log_request_middleware(request: Request, call_next):
    """Tag every log event of a request with its id and target session.

    A caller-supplied X-Request-ID is reused so ids correlate across services.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
    bind_context(request_id=request_id, method=request.method, path=request.url.path)
    match = _SESSION_PATH.match(request.url.path)
    if match:
        bind_context(session_id=match.group(1))

    started = time.perf_counter()
    try:
        response = await call_next(request)
        logger.debug(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        clear_context()


async def exception_handler(
    request: Request, exc: LedgerReconcilerError
) -> JSONResponse:
    """Translate domain errors into their status code and error body."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "domain_exception",
        error_code=exc.error_code,
        status_code=exc.status_code,
        message=exc.message,
        context=exc.context,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Bank statement reconciliation against ledger transactions",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.middleware("http")(log_request_middleware)
    app.add_exception_handler(LedgerReconcilerError, exception_handler)
    app.include_router(health_router)
    app.include_router(reconciliation_router)
    return app


# Create app instance for uvicorn
app = create_app()
