"""
Main Entry Point - FastAPI Application.

Legislative data bridge: a generic document store over one Postgres table,
reached by the records frontend through a small REST contract.

This file contains:
- FastAPI app construction (create_app)
- DataBridge startup/shutdown in the lifespan handler
- Route mounting from api/routes/
- Middleware setup from api/middleware.py
- Error handlers that turn storage errors into JSON bodies

NO BUSINESS LOGIC - just wiring and setup.

Usage:
    uvicorn main:app --reload
    python main.py
"""

import os
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

# Load environment variables with explicit path (works when run from any directory)
_env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env")
load_dotenv(_env_path)

# ============================================================================
# NON-BLOCKING LOGGING SETUP (MUST BE BEFORE OTHER IMPORTS)
# ============================================================================
from utils.logger_config import configure_non_blocking_logging

_log_listener = configure_non_blocking_logging()

from api import APP_VERSION
from api.middleware import setup_middlewares, setup_request_logging
from api.routes import documents_router, system_router
from db.bridge import DataBridge
from db.errors import StorageError

logger = logging.getLogger(__name__)


# =============================================================================
# LIFESPAN EVENTS
# =============================================================================

def _log_start_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Data bridge startup crashed", exc_info=exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Start the data bridge without blocking the server.

    Resolution, pool creation and schema bootstrap run in a worker thread;
    until they finish, data requests fail with ConnectionError while
    /healthz and other non-data routes keep answering.
    """
    bridge: DataBridge = app.state.bridge
    start_task: Optional[asyncio.Task] = None

    if app.state.start_bridge:
        logger.info("Data bridge starting (DATABASE_URL %s)", "detected" if bridge.database_url else "not set")
        start_task = asyncio.create_task(asyncio.to_thread(bridge.start))
        start_task.add_done_callback(_log_start_failure)
    app.state.bridge_start_task = start_task

    yield

    if start_task is not None:
        if not start_task.done():
            logger.warning("Shutdown requested, waiting for data bridge startup to finish")
        # worker threads cannot be cancelled; the pool it opens is closed below
        await asyncio.wait([start_task])
    bridge.close()
    logger.info("Data bridge shut down")


# =============================================================================
# ERROR HANDLERS
# =============================================================================

async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", []) if part != "body")
        msg = err.get("msg", "Invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return JSONResponse(
        status_code=400,
        content={"error": "ValidationError", "message": "; ".join(messages)},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "InternalError", "message": "Internal server error"},
    )


# =============================================================================
# FASTAPI APPLICATION
# =============================================================================

def create_app(bridge: Optional[DataBridge] = None, *, start_bridge: bool = True) -> FastAPI:
    """
    Build the application around a DataBridge.

    Args:
        bridge: Storage service to serve; built from the environment when omitted
        start_bridge: Run bridge.start() in the background during lifespan startup
    """
    app = FastAPI(
        title="Legislative Data Bridge",
        description="Generic document store over Postgres for the legislative records system",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.bridge = bridge or DataBridge.from_env()
    app.state.start_bridge = start_bridge

    setup_middlewares(app)
    setup_request_logging(app)

    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # System routes first: /api/health and /api/system/* must not match /api/{store}
    app.include_router(system_router)
    app.include_router(documents_router)

    @app.get("/healthz", include_in_schema=False)
    async def healthz():
        """Liveness probe, no I/O."""
        return {"status": "healthy", "mode": app.state.bridge.mode}

    return app


app = create_app()


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Suppress health check access logs
    class _HealthCheckFilter(logging.Filter):
        _SUPPRESSED = {"/healthz", "/api/health"}
        def filter(self, record: logging.LogRecord) -> bool:
            msg = record.getMessage()
            return not any(f'"{path} ' in msg or f" {path} " in msg for path in self._SUPPRESSED)

    logging.getLogger("uvicorn.access").addFilter(_HealthCheckFilter())

    port = int(os.getenv("PORT", "8080"))

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=port,
        log_level=os.getenv("UVICORN_LOG_LEVEL", "info").lower(),
    )
