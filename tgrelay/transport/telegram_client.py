# tgrelay/transport/telegram_client.py
"""
Telegram Bot API client used by every relay endpoint.

All provider calls go through ``TelegramClient.forward()``, which performs
one request and folds the outcome into a ``ForwardResult``:

- success               → ``ok=True``, ``data`` = provider JSON body
- provider error (4xx…) → ``ok=False``, ``error`` = provider JSON body verbatim
- transport failure     → ``ok=False``, ``error`` = ``{"ok": false, "description": ...}``

Nothing is retried. Callers decide how a failed result maps to an HTTP
response.

Media retrieval is a two-step flow:
1. getFile(file_id) → file_path
2. GET {api_base}/file/bot{token}/{file_path} → binary, streamed to the caller

HTTP session lifecycle:
- Uses the shared sessions from tgrelay.infra.http_client.
- Call close_all_sessions() during application shutdown.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import aiohttp

from tgrelay.config import Settings
from tgrelay.infra.http_client import get_api_session, get_media_session
from tgrelay.infra.logging_config import get_logger, redact_token
from tgrelay.infra.metrics import inc_counter
from tgrelay.transport.media import MediaFetchError, content_type_for_path

logger = get_logger(__name__)

ALLOWED_UPDATES = ("message", "message_reaction")


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class ForwardResult:
    """Outcome of a single Bot API call."""

    ok: bool
    status: int  # Upstream HTTP status, 0 for connection-level errors
    data: dict | None = None
    error: dict | None = None

    @classmethod
    def failure(cls, description: str, status: int = 0) -> "ForwardResult":
        return cls(ok=False, status=status, error={"ok": False, "description": description})


@dataclass
class MediaStream:
    """An open file download plus the Content-Type to relay it with."""

    response: aiohttp.ClientResponse
    content_type: str | None
    file_path: str


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class TelegramClient:
    """
    Forwards relay calls to the Telegram Bot API.

    Holds only read-only configuration (token, chat target, API base), so a
    single instance is shared by all concurrent requests.
    """

    def __init__(self, settings: Settings):
        self._token = settings.telegram_token or ""
        self._chat_id = settings.telegram_chat_id
        self._api_base = settings.telegram_api_base.rstrip("/")
        self._updates_timeout = settings.updates_timeout_seconds

    @property
    def chat_id(self) -> str | None:
        return self._chat_id

    @property
    def updates_timeout(self) -> int:
        return self._updates_timeout

    def _api_url(self, method: str) -> str:
        return f"{self._api_base}/bot{self._token}/{method}"

    def file_url(self, file_path: str) -> str:
        """Absolute download URL for a ``file_path`` returned by getFile."""
        return f"{self._api_base}/file/bot{self._token}/{file_path.lstrip('/')}"

    def with_chat_target(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Copy of ``payload`` addressed to the configured chat, whatever the client sent."""
        return {**payload, "chat_id": self._chat_id}

    # -- generic forwarding ------------------------------------------------

    async def forward(
        self,
        method: str,
        *,
        http_method: str = "POST",
        body: dict | None = None,
        data: aiohttp.FormData | None = None,
        params: dict | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> ForwardResult:
        """
        Call Bot API ``method`` once and return a uniform result.

        Args:
            method: Bot API method name (sendMessage, getFile, ...)
            http_method: HTTP verb for the call
            body: JSON body
            data: multipart body (file uploads)
            params: query string parameters
            timeout: per-request timeout override

        Returns:
            ForwardResult; never raises for provider or transport errors.
        """
        if not self._token:
            logger.error(f"Telegram {method} not sent: TELEGRAM_TOKEN is not configured")
            inc_counter("telegram_calls_total", method=method, outcome="unconfigured")
            return ForwardResult.failure("Relay is not configured")

        request_kwargs: dict[str, Any] = {}
        if body is not None:
            request_kwargs["json"] = body
        if data is not None:
            request_kwargs["data"] = data
        if params is not None:
            request_kwargs["params"] = params
        if timeout is not None:
            request_kwargs["timeout"] = timeout

        session = get_api_session()
        try:
            async with session.request(http_method, self._api_url(method), **request_kwargs) as resp:
                resp_body = await _safe_response_json(resp)

                if resp.status == 200 and isinstance(resp_body, dict) and resp_body.get("ok"):
                    inc_counter("telegram_calls_total", method=method, outcome="ok")
                    return ForwardResult(ok=True, status=resp.status, data=resp_body)

                if isinstance(resp_body, dict):
                    error = resp_body
                else:
                    error = {"ok": False, "description": f"Provider returned HTTP {resp.status}"}

                logger.error(
                    f"Telegram {method} failed: status={resp.status}, "
                    f"code={error.get('error_code')}, msg={error.get('description')}"
                )
                inc_counter("telegram_calls_total", method=method, outcome="error")
                return ForwardResult(ok=False, status=resp.status, error=error)

        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            description = redact_token(str(exc)) or exc.__class__.__name__
            logger.error(f"Telegram {method} connection error: {exc.__class__.__name__}: {description}")
            inc_counter("telegram_calls_total", method=method, outcome="transport_error")
            return ForwardResult.failure(description)

    # -- specific calls ----------------------------------------------------

    async def get_updates(self, offset: int | None = None, timeout: int | None = None) -> ForwardResult:
        """Long-poll getUpdates for message and message_reaction updates only."""
        poll_timeout = self._updates_timeout if timeout is None else timeout
        params: dict[str, Any] = {
            "timeout": poll_timeout,
            "allowed_updates": json.dumps(list(ALLOWED_UPDATES)),
        }
        if offset is not None:
            params["offset"] = offset

        return await self.forward(
            "getUpdates",
            http_method="GET",
            params=params,
            timeout=aiohttp.ClientTimeout(total=poll_timeout + 10, connect=5),
        )

    async def get_file(self, payload: dict[str, Any]) -> ForwardResult:
        """
        getFile with ``result.file_path`` rewritten to an absolute download URL.

        The rewritten URL embeds the bot token; it is meant for trusted
        front-ends only.
        """
        result = await self.forward("getFile", body=payload)
        if not result.ok or result.data is None:
            return result

        file_info = result.data.get("result")
        if isinstance(file_info, dict) and file_info.get("file_path"):
            rewritten = {**file_info, "file_path": self.file_url(file_info["file_path"])}
            result.data = {**result.data, "result": rewritten}
        return result

    async def resolve_file_path(self, file_id: str) -> str:
        """
        Resolve a Telegram file_id to its relative file_path.

        Raises:
            MediaFetchError: getFile failed or returned no file_path
        """
        result = await self.forward("getFile", body={"file_id": file_id})
        if not result.ok or result.data is None:
            description = (result.error or {}).get("description", "unknown error")
            raise MediaFetchError(f"getFile failed: {description}", status=result.status)

        file_path = (result.data.get("result") or {}).get("file_path")
        if not file_path:
            raise MediaFetchError(f"getFile response missing 'file_path' for file_id {file_id[:20]}")
        return file_path

    async def open_file_stream(self, file_path: str) -> aiohttp.ClientResponse:
        """
        Start downloading ``file_path``; the caller owns the returned response.

        Raises:
            MediaFetchError: connection failed or status is not 200
        """
        session = get_media_session()
        try:
            resp = await session.get(self.file_url(file_path))
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            description = redact_token(str(exc)) or exc.__class__.__name__
            raise MediaFetchError(f"File download failed: {description}") from exc

        if resp.status != 200:
            resp.release()
            raise MediaFetchError(f"File download returned {resp.status}", status=resp.status)
        return resp

    async def open_media(self, file_id: str) -> MediaStream:
        """getFile → download; returns the open stream and its inferred Content-Type."""
        file_path = await self.resolve_file_path(file_id)
        response = await self.open_file_stream(file_path)
        inc_counter("media_streams_total")
        return MediaStream(
            response=response,
            content_type=content_type_for_path(file_path),
            file_path=file_path,
        )


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------

async def _safe_response_json(resp: aiohttp.ClientResponse) -> Any:
    """Parse JSON from response, returning None if body is not valid JSON."""
    try:
        return await resp.json(content_type=None)
    except (aiohttp.ContentTypeError, ValueError):
        logger.warning(f"Telegram API returned non-JSON body: status={resp.status}")
        return None
