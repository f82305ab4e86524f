"""
API Middleware Module

Cross-origin access and request logging for the data bridge API. The
records frontend may be served from any origin (or from a file), so CORS is
open by default and narrowed with CORS_ORIGINS.
"""

import os
import time
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization", "Accept"]

# Paths not worth a log line per request
QUIET_PATHS: frozenset[str] = frozenset({"/healthz", "/api/health"})


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()] or ["*"]


def setup_middlewares(app: FastAPI) -> None:
    """
    Configure CORS for the FastAPI application.

    With the default "*", any origin is reflected back so credentialed
    requests from the frontend keep working.
    """
    origins = _cors_origins()
    if origins == ["*"]:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=".*",
            allow_credentials=True,
            allow_methods=CORS_METHODS,
            allow_headers=CORS_HEADERS,
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=CORS_METHODS,
            allow_headers=CORS_HEADERS,
        )

    logger.info("Middlewares configured: CORS (origins=%s)", origins)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration of each request."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = time.perf_counter() - start_time

        if request.url.path not in QUIET_PATHS:
            logger.debug(
                "%s %s - %d (%.3fs)",
                request.method,
                request.url.path,
                response.status_code,
                process_time,
            )

        return response


def setup_request_logging(app: FastAPI) -> None:
    app.add_middleware(RequestLoggingMiddleware)
    logger.info("Request logging middleware configured")
