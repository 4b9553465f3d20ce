"""
Writegy Backend - FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn app.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain (outermost first):                     │
    │  CORS → Req ID → Logging → Rate Limit → GZip             │
    │                                                          │
    │  Routes:                                                 │
    │  /api/documents/*   /api/grammar/check   /auth/*         │
    │  /health                                                 │
    │                                                          │
    │  Exception Handlers:                                     │
    │  Validation→400 │ Unauthorized→401 │ NotFound→404        │
    │  Circular→409 │ Unavailable→503 │ DB→500                 │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, log startup complete
    Shutdown: close the completion client, dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app import __version__
from app.config import settings
from app.database import dispose_engine
from app.exceptions import (
    CircuitBreakerOpenError,
    CircularReferenceError,
    DatabaseError,
    IdentityProviderError,
    LLMServiceError,
    NotFoundError,
    ServiceUnavailableError,
    StorageError,
    UnauthorizedError,
    ValidationError,
    WritegyError,
)
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.routes import auth, documents, grammar, health
from app.services.completion_client import completion_client

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: 2026-01-01T12:00:00 [INFO] app.services.grammar_service: message
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries that log every operation at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Writegy Backend starting up (environment=%s)...", settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving so /health can report the problem
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    if not completion_client.is_configured:
        logger.warning("LLM_API_KEY not set: grammar checks will use the heuristic checker")
    logger.info("Storage backend: %s", settings.storage_backend)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Writegy Backend shutting down...")
    await completion_client.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(error: str, message: str, details: Dict = None) -> Dict:
    body = {
        "error": error,
        "message": message,
        "request_id": request_id_var.get(""),
    }
    if details:
        body["details"] = details
    return body


def _unavailable_code(exc: ServiceUnavailableError) -> str:
    if isinstance(exc, LLMServiceError):
        return "llm_service_error"
    if isinstance(exc, StorageError):
        return "storage_unavailable"
    if isinstance(exc, IdentityProviderError):
        return "identity_provider_unavailable"
    return "service_unavailable"


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers for consistent error responses.

    Handler hierarchy:
        ValidationError          → 400 Bad Request
        UnauthorizedError        → 401 Unauthorized
        NotFoundError            → 404 Not Found
        CircularReferenceError   → 409 Conflict
        CircuitBreakerOpenError  → 503 Service Unavailable (circuit open)
        ServiceUnavailableError  → 503 Service Unavailable
        DatabaseError            → 500 Internal Server Error
        WritegyError (base)      → 500 Internal Server Error
        Exception (fallback)     → 500 Internal Server Error

    429 responses come from RateLimitMiddleware, which runs outside these
    handlers.

    Responses never include stack traces, SQL or file paths; those are
    logged server-side with the request ID.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", exc.message, exc.context),
        )

    @app.exception_handler(UnauthorizedError)
    async def handle_unauthorized(request: Request, exc: UnauthorizedError):
        logger.info("[%s] Unauthorized: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=401,
            content=_error_body("unauthorized", exc.message),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=404,
            content=_error_body("not_found", exc.message),
        )

    @app.exception_handler(CircularReferenceError)
    async def handle_circular_reference(request: Request, exc: CircularReferenceError):
        logger.info("[%s] Rejected circular move: %s", request_id_var.get(""), exc.context)
        return JSONResponse(
            status_code=409,
            content=_error_body("circular_reference", exc.message, exc.context),
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=503,
            content=_error_body(
                "service_unavailable",
                exc.message,
                {"recovery_time": exc.recovery_time},
            ),
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(ServiceUnavailableError)
    async def handle_service_unavailable(request: Request, exc: ServiceUnavailableError):
        logger.error(
            "[%s] %s: %s | Context: %s",
            request_id_var.get(""),
            type(exc).__name__,
            exc.message,
            exc.context,
        )
        headers = {}
        if exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(
            status_code=503,
            content=_error_body(_unavailable_code(exc), exc.message),
            headers=headers,
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "server_error",
                "An internal error occurred. Please try again later.",
            ),
        )

    @app.exception_handler(WritegyError)
    async def handle_application_error(request: Request, exc: WritegyError):
        logger.error("[%s] Unhandled application error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", exc.message),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Tests build a fresh instance per client and swap dependencies through
    app.dependency_overrides.
    """
    app = FastAPI(
        title="Writegy API",
        description=(
            "Writing assistant backend: hierarchical documents with live word "
            "and character counts, plus AI grammar checking with a heuristic "
            "fallback."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: CORS → RequestID → Logging → RateLimit → GZip
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-Total-Count",
            "Retry-After",
            "X-Rate-Limit-Remaining",
            "X-Rate-Limit-Retry-After-Seconds",
        ],
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(documents.router)
    app.include_router(grammar.router)
    app.include_router(auth.router)
    app.include_router(health.router)

    return app


# uvicorn entry point: app.main:app
app = create_app()
