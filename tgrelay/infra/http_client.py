# tgrelay/infra/http_client.py
"""
Shared HTTP client sessions for the relay.

Provides named, lazy-initialized aiohttp.ClientSession singletons
to avoid per-request session creation overhead and TCP connection churn.

Session profiles
~~~~~~~~~~~~~~~~
- **api**   – Bot API method calls (total=35 s, connect=5 s, pool limit=20).
  ``getUpdates`` overrides the total timeout per request to fit its long poll.
- **media** – file downloads proxied to clients (no total cap,
  connect=15 s, sock_read=60 s, pool limit=10)

Shutdown
~~~~~~~~
Call ``close_all_sessions()`` once during application shutdown.
"""
from __future__ import annotations

import aiohttp

from tgrelay.infra.logging_config import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Internal state
# ---------------------------------------------------------------------------

_sessions: dict[str, aiohttp.ClientSession] = {}


def _get_or_create(
    name: str,
    timeout: aiohttp.ClientTimeout,
    limit: int = 10,
) -> aiohttp.ClientSession:
    """Return an existing session or create a new one."""
    session = _sessions.get(name)
    if session is None or session.closed:
        session = aiohttp.ClientSession(
            timeout=timeout,
            connector=aiohttp.TCPConnector(
                keepalive_timeout=30,
                limit=limit,
                enable_cleanup_closed=True,
            ),
        )
        _sessions[name] = session
        logger.debug("HTTP session '%s' created (limit=%d)", name, limit)
    return session


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_api_session() -> aiohttp.ClientSession:
    """Session for Bot API method calls (sendMessage, getFile, getUpdates...)."""
    return _get_or_create(
        "api",
        aiohttp.ClientTimeout(total=35, connect=5),
        limit=20,
    )


def get_media_session() -> aiohttp.ClientSession:
    """Session for streaming file downloads back to the client."""
    return _get_or_create(
        "media",
        aiohttp.ClientTimeout(total=None, connect=15, sock_read=60),
        limit=10,
    )


async def close_all_sessions() -> None:
    """Gracefully close every managed session.  Call during app shutdown."""
    for name in list(_sessions):
        session = _sessions.pop(name, None)
        if session is not None and not session.closed:
            await session.close()
            logger.debug("HTTP session '%s' closed", name)
