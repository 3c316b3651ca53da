# tgrelay/transport/http_app.py
"""
HTTP application factory for the Telegram relay.

Layers:
1. Public relay API under /api (see tgrelay.transport.routes)
2. Public /health for load balancers
3. /metrics behind a bearer token (hidden when no token is configured)

``create_app(settings)`` takes an explicit, immutable Settings object; the
handlers reach it (and the shared TelegramClient) through ``app.state``.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tgrelay.config import Settings, get_settings, validate_or_warn
from tgrelay.infra.http_client import close_all_sessions
from tgrelay.infra.logging_config import get_logger
from tgrelay.infra.metrics import get_metrics_collector
from tgrelay.transport.middleware import (
    ErrorHandlingMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from tgrelay.transport.routes import router as relay_router
from tgrelay.transport.security import require_metrics_auth, sanitize_error_message
from tgrelay.transport.telegram_client import TelegramClient

logger = get_logger(__name__)


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Application lifecycle: startup and shutdown"""
    settings: Settings = fastapi_app.state.settings

    logger.info(
        f"Starting relay: env={settings.app_env}, "
        f"api_base={settings.telegram_api_base}, "
        f"telegram_configured={settings.telegram_enabled}"
    )

    yield

    # SHUTDOWN
    await close_all_sessions()
    logger.info("Relay stopped, HTTP sessions closed")


# ============================================================================
# CREATE APP
# ============================================================================

def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the relay application.

    Args:
        settings: Configuration to serve with; defaults to the process
            environment (``get_settings()``).
    """
    if settings is None:
        settings = get_settings()
    validate_or_warn(settings)

    app = FastAPI(
        title="Telegram Relay",
        description="Relays front-end calls to the Telegram Bot API",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        openapi_url=None if settings.is_production else "/openapi.json",
    )
    app.state.settings = settings
    app.state.telegram = TelegramClient(settings)

    # Wildcard origins cannot be combined with credentials
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=settings.allowed_origins != ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware, is_production=settings.is_production)
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
    app.add_middleware(RequestIDMiddleware)

    _register_exception_handlers(app, settings)
    _register_service_routes(app)
    app.include_router(relay_router)

    @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH"], include_in_schema=False)
    async def catch_all(path: str):
        """Generic 404 for undefined endpoints."""
        logger.warning(f"404 - Unknown route accessed: {path[:100]}")
        raise HTTPException(status_code=404, detail="Not found")

    return app


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Render HTTP exceptions in the relay's error shape"""
        if exc.status_code >= 500:
            logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})

        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "description": exc.detail},
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed query/body: 422 with field locations only"""
        fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
        logger.info(f"Request validation failed: {request.url.path} fields={fields}")
        return JSONResponse(
            status_code=422,
            content={"ok": False, "description": f"Invalid request: {', '.join(fields)}"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.error(f"Unhandled exception: {exc.__class__.__name__}", exc_info=True)

        return JSONResponse(
            status_code=500,
            content={"ok": False, "description": sanitize_error_message(exc, settings.is_production)},
        )


# ============================================================================
# SERVICE ENDPOINTS
# ============================================================================

def _register_service_routes(app: FastAPI) -> None:

    @app.get("/health")
    def health():
        """
        Basic health check - PUBLIC endpoint.
        Used by load balancers, monitoring, etc.
        """
        return {"status": "healthy"}

    @app.get("/metrics", dependencies=[Depends(require_metrics_auth)])
    def metrics():
        """In-process counters and latency histograms."""
        return get_metrics_collector().get_metrics()
