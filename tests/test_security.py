# tests/test_security.py
"""Tests for tgrelay/transport/security.py — security utilities."""
from __future__ import annotations

import pytest
from fastapi.responses import JSONResponse

from tgrelay.transport.security import (
    SecurityHeaders,
    sanitize_error_message,
    verify_shared_secret,
)


# ============================================================================
# Shared secret
# ============================================================================

class TestVerifySharedSecret:
    def test_exact_match(self):
        assert verify_shared_secret("s3cret-value", "s3cret-value") is True

    def test_unicode_match(self):
        assert verify_shared_secret("пароль-🔑", "пароль-🔑") is True

    @pytest.mark.parametrize(
        "submitted",
        ["", "s3cret", "s3cret-value ", " s3cret-value", "S3CRET-VALUE", None, 0, 1.5, b"s3cret-value", ["s3cret-value"], {"secret": "s3cret-value"}],
    )
    def test_mismatch(self, submitted):
        assert verify_shared_secret(submitted, "s3cret-value") is False

    @pytest.mark.parametrize("expected", [None, ""])
    def test_unconfigured_secret_rejects_everything(self, expected):
        assert verify_shared_secret("", expected) is False
        assert verify_shared_secret("anything", expected) is False


# ============================================================================
# Error messages
# ============================================================================

class TestSanitizeErrorMessage:
    def test_dev_shows_detail_without_token(self):
        err = RuntimeError("GET https://api.telegram.org/bot123:ABCdef/getMe failed")
        message = sanitize_error_message(err, is_production=False)
        assert "123:ABCdef" not in message
        assert "failed" in message

    def test_production_is_generic(self):
        assert sanitize_error_message(ValueError("secret detail"), is_production=True) == "Invalid input"
        assert sanitize_error_message(RuntimeError("boom"), is_production=True) == "An error occurred"


# ============================================================================
# Security headers
# ============================================================================

class TestSecurityHeaders:
    def test_default_headers(self):
        resp = SecurityHeaders.add_security_headers(JSONResponse({}))
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["Cache-Control"] == "no-store, no-cache, must-revalidate"
        assert "Strict-Transport-Security" not in resp.headers

    def test_existing_cache_control_kept(self):
        resp = JSONResponse({}, headers={"Cache-Control": "public, max-age=60"})
        SecurityHeaders.add_security_headers(resp)
        assert resp.headers["Cache-Control"] == "public, max-age=60"

    def test_hsts_in_production(self):
        resp = SecurityHeaders.add_security_headers(JSONResponse({}), is_production=True)
        assert "max-age=31536000" in resp.headers["Strict-Transport-Security"]
