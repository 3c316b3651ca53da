# tgrelay/transport/security.py
"""
Security utilities for the relay.

- Shared-secret verification for /api/verify (constant-time comparison)
- Bearer token protection for /metrics
- OWASP response headers
- Error message sanitizing for client-facing bodies
"""
from __future__ import annotations

import hmac
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tgrelay.config import Settings
from tgrelay.infra.logging_config import get_logger, redact_token

logger = get_logger(__name__)

_metrics_bearer = HTTPBearer(auto_error=False)


def verify_shared_secret(submitted: Any, expected: str | None) -> bool:
    """
    True iff ``submitted`` is a string exactly equal to ``expected``.

    Empty or missing values never match, and an unset ``expected`` rejects
    everything. Comparison is constant-time on the UTF-8 bytes.
    """
    if not expected:
        return False
    if not isinstance(submitted, str) or not submitted:
        return False
    return hmac.compare_digest(submitted.encode("utf-8"), expected.encode("utf-8"))


def require_metrics_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_metrics_bearer),
) -> None:
    """
    Dependency guarding /metrics.

    Responds 404 when metrics are disabled or no METRICS_TOKEN is configured,
    401 when the bearer token is missing or wrong.

    Usage:
        @router.get("/metrics", dependencies=[Depends(require_metrics_auth)])
        def metrics():
            ...
    """
    settings: Settings = request.app.state.settings

    if not settings.enable_metrics or not settings.metrics_token:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    if credentials is None or not hmac.compare_digest(
        credentials.credentials.encode("utf-8"),
        settings.metrics_token.encode("utf-8"),
    ):
        logger.warning("Metrics access denied: invalid or missing bearer token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


class SecurityHeaders:
    """
    Adds OWASP recommended security headers to responses.
    """

    @staticmethod
    def add_security_headers(response, is_production: bool = False):
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"

        # Prevent MIME sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Referrer policy - don't leak URLs to third parties
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Cache control for API responses (default no-cache, endpoints can override)
        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

        if is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        # CORP=cross-origin lets the front-end embed proxied /api/media content
        response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"

        if "Server" in response.headers:
            del response.headers["Server"]

        return response


def sanitize_error_message(error: Exception, is_production: bool) -> str:
    """
    Sanitize error messages for external responses.
    In production: Generic messages
    In dev: Detailed messages
    """
    if not is_production:
        return redact_token(str(error))

    error_type = type(error).__name__

    generic_messages = {
        "ValueError": "Invalid input",
        "KeyError": "Invalid request",
        "ConnectionError": "Service temporarily unavailable",
        "TimeoutError": "Request timeout",
    }

    return generic_messages.get(error_type, "An error occurred")
