# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tgrelay.config import Settings  # noqa: E402
from tgrelay.transport.http_app import create_app  # noqa: E402


@pytest.fixture
def bot_token():
    """Bot token used by the test settings"""
    return "123456789:AAtest-token_value"


@pytest.fixture
def chat_id():
    """Configured chat target for tests"""
    return "-1001234567890"


@pytest.fixture
def relay_secret():
    return "correct-horse-battery"


@pytest.fixture
def metrics_token():
    return "metrics-token-abc"


@pytest.fixture
def settings(bot_token, chat_id, relay_secret, metrics_token):
    """Explicit settings; the .env file is never read in tests"""
    return Settings(
        _env_file=None,
        app_env="dev",
        telegram_token=bot_token,
        telegram_chat_id=chat_id,
        telegram_api_base="https://api.telegram.org",
        relay_secret=relay_secret,
        metrics_token=metrics_token,
        enable_metrics=True,
        media_chunk_size=4,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def telegram(app):
    """The app's TelegramClient (patch its coroutine methods per test)"""
    return app.state.telegram


@pytest.fixture
def client(app):
    return TestClient(app)


# ---------------------------------------------------------------------------
# aiohttp mocks
# ---------------------------------------------------------------------------

def make_mock_response(status=200, json_data=None, json_error=None):
    """Create a mock aiohttp response."""
    resp = MagicMock()
    resp.status = status
    if json_error is not None:
        resp.json = AsyncMock(side_effect=json_error)
    else:
        resp.json = AsyncMock(return_value=json_data)
    return resp


def make_mock_session(response=None, enter_error=None):
    """Create a mock session whose .request() is an async context manager."""
    ctx = MagicMock()
    if enter_error is not None:
        ctx.__aenter__ = AsyncMock(side_effect=enter_error)
    else:
        ctx.__aenter__ = AsyncMock(return_value=response)
    ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.request = MagicMock(return_value=ctx)
    return session


async def _aiter(chunks, error=None):
    for chunk in chunks:
        yield chunk
    if error is not None:
        raise error


def make_stream_response(chunks, status=200, error=None):
    """Mock aiohttp response whose body is served by content.iter_chunked()."""
    resp = MagicMock()
    resp.status = status
    resp.content.iter_chunked = MagicMock(return_value=_aiter(chunks, error))
    return resp
