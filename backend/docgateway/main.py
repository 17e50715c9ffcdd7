"""
Document Gateway: FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers and routers;
       `app` is the module-level instance uvicorn serves
       (uvicorn docgateway.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌──────────┐ ┌────────────┐ ┌─────────┐                 │
    │  │  Req ID  │→│ Rate Limit │→│ Logging │                 │
    │  └──────────┘ └────────────┘ └─────────┘                 │
    │                                                          │
    │  Routes:                                                 │
    │  ┌─────────┐ ┌────────────┐ ┌────────┐ ┌──────────────┐  │
    │  │ /health │ │ /documents │ │ /query │ │ /users       │  │
    │  └─────────┘ └────────────┘ └────────┘ └──────────────┘  │
    │                                                          │
    │  Exception Handlers → ErrorEnvelope:                     │
    │  INVALID_INPUT 400 │ NOT_FOUND 404 │ CONFLICT 409        │
    │  INTERNAL_ERROR 500 │ TIMEOUT 504                        │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, log the listen address
    Shutdown: dispose primary and replica engines
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from docgateway import __version__
from docgateway.config import settings
from docgateway.database import dispose_engine
from docgateway.exceptions import (
    ConflictError,
    DatabaseError,
    GatewayError,
    NotFoundError,
    StoreTimeoutError,
    ValidationError,
)
from docgateway.middleware.logging import RequestLoggingMiddleware
from docgateway.middleware.rate_limit import RateLimitMiddleware
from docgateway.middleware.request_id import (
    REQUEST_ID_HEADER,
    RequestIDMiddleware,
    request_id_var,
)
from docgateway.routes import documents, health, query, users
from docgateway.schemas.envelope import ErrorEnvelope

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configures the root logger once, before anything else logs.

    Format: 2024-01-15T12:00:00 [INFO] docgateway.services.user_service: User created: user-1705...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Access lines come from docgateway.access instead
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Document Gateway %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health reports the store as unreachable
        logger.error("Configuration error: %s", str(e))

    logger.info(
        "Bucket '%s', replica %s, store timeout %.1fs",
        settings.bucket_name,
        "configured" if settings.has_replica else "not configured (reads use primary)",
        settings.store_timeout_seconds,
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Document Gateway shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

_STATUS_ERROR_CODES = {
    400: "INVALID_INPUT",
    404: "NOT_FOUND",
    409: "CONFLICT",
    429: "RATE_LIMITED",
    504: "TIMEOUT",
}


def error_response(
    status_code: int,
    error: str,
    error_code: str,
    key: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    rid = request_id_var.get("") or None
    envelope = ErrorEnvelope(
        error=error,
        error_code=error_code,
        key=key,
        details=details or None,
        request_id=rid,
    )
    # Set here as well: the catch-all handler runs outside RequestIDMiddleware
    headers = {REQUEST_ID_HEADER: rid} if rid else None
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(by_alias=True),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Maps every failure to an ErrorEnvelope.

    Handler hierarchy:
        ValidationError, RequestValidationError → 400 INVALID_INPUT
        NotFoundError                           → 404 NOT_FOUND
        ConflictError (exists / version)        → 409 CONFLICT
        StoreTimeoutError                       → 504 TIMEOUT
        DatabaseError                           → 500 INTERNAL_ERROR
        GatewayError (base)                     → its own status / code
        StarletteHTTPException                  → its status (unknown route, bad method)
        Exception (fallback)                    → 500 INTERNAL_ERROR

    Driver messages and stack traces are logged, never returned.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        details = {"field": exc.field} if exc.field else None
        return error_response(exc.status_code, exc.message, exc.error_code, exc.key, details)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid request")
        if location:
            message = f"{location}: {message}"
        logger.warning("[%s] Request validation error: %s", request_id_var.get(""), message)
        return error_response(400, message, "INVALID_INPUT")

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return error_response(exc.status_code, exc.message, exc.error_code, exc.key)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.info("[%s] Conflict on %s: %s", request_id_var.get(""), exc.key, exc.message)
        return error_response(exc.status_code, exc.message, exc.error_code, exc.key)

    @app.exception_handler(StoreTimeoutError)
    async def handle_timeout(request: Request, exc: StoreTimeoutError):
        logger.warning(
            "[%s] Store timeout: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        details = {k: exc.context[k] for k in ("operation", "attempts") if k in exc.context}
        return error_response(exc.status_code, exc.message, exc.error_code, exc.key, details)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        return error_response(exc.status_code, "Internal server error", exc.error_code, exc.key)

    @app.exception_handler(GatewayError)
    async def handle_gateway_error(request: Request, exc: GatewayError):
        logger.error("[%s] %s: %s", request_id_var.get(""), type(exc).__name__, exc.message)
        return error_response(exc.status_code, exc.message, exc.error_code, exc.key)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        code = _STATUS_ERROR_CODES.get(
            exc.status_code, "INVALID_INPUT" if exc.status_code < 500 else "INTERNAL_ERROR"
        )
        return error_response(exc.status_code, str(exc.detail), code)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True
        )
        return error_response(500, "Internal server error", "INTERNAL_ERROR")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Document Gateway API",
        description=(
            "REST gateway over an async document store: key/value documents with "
            "CAS-based optimistic concurrency, user management, parameterized "
            "queries, and replica-fallback reads."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → RateLimit → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(documents.router)
    app.include_router(query.router)
    app.include_router(users.router)

    return app


app = create_app()
