"""FastAPI application exposing the dispatch triggers.

Thin HTTP surface over the assignment orchestrator, the reclamation sweep
and the logged-users query. Every service exception is rendered as
``{error_code, message, remediation, details}``.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("agent_dispatch").setLevel(logging.INFO)

from agent_dispatch import __version__
from agent_dispatch.api.routes import agents, assignments, reclamation
from agent_dispatch.api.schemas import HealthResponse
from agent_dispatch.db.connection import get_db_context, init_db
from agent_dispatch.errors import DispatchError, DomainError
from agent_dispatch.services.errors import (
    ChatwootAPIError,
    HostStoreError,
    to_dispatch_error,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create state tables on startup."""
    init_db()
    logger.info("agent-dispatch %s started", __version__)
    yield
    logger.info("agent-dispatch shutting down")


app = FastAPI(
    title="agent-dispatch",
    description="Capacity-aware conversation assignment for Chatwoot",
    version=__version__,
    lifespan=lifespan,
)


def _render(error: DispatchError) -> JSONResponse:
    return JSONResponse(
        status_code=error.http_status,
        content={
            "error_code": error.code,
            "message": error.message,
            "remediation": error.remediation,
            "details": error.details if error.details else None,
        },
    )


@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    """Render a coded DispatchError."""
    return _render(exc)


@app.exception_handler(DomainError)
@app.exception_handler(ChatwootAPIError)
@app.exception_handler(HostStoreError)
async def service_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Translate service exceptions to their error code.

    Args:
        request: The incoming request.
        exc: NotFoundError, ParameterNotFoundError, ValidationError,
            ChatwootAPIError or HostStoreError.

    Returns:
        JSONResponse with the coded error.
    """
    error = to_dispatch_error(exc)
    logger.error("%s %s failed: %s", request.method, request.url.path, error)
    return _render(error)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed trigger payloads as E-2001."""
    fields = [".".join(str(part) for part in err["loc"][1:]) for err in exc.errors()]
    error = DispatchError.from_code(
        "E-2001",
        detail=f"Invalid or missing field(s): {', '.join(fields) or 'body'}",
        details={"fields": fields},
    )
    return _render(error)


app.include_router(assignments.router, prefix="/api/v1")
app.include_router(reclamation.router, prefix="/api/v1")
app.include_router(agents.router, prefix="/api/v1")


@app.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Health check with state-store connectivity."""
    database = "ok"
    try:
        with get_db_context() as db:
            db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Health check database query failed: %s", e)
        database = "unavailable"
    return HealthResponse(
        status="ok" if database == "ok" else "degraded",
        version=__version__,
        database=database,
    )
