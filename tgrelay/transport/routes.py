# tgrelay/transport/routes.py
"""
Relay API Router - one endpoint per Telegram Bot API operation.

Endpoints (all under /api):
- GET  /getUpdates         - long-poll message / message_reaction updates
- GET  /media              - stream a file by file_id (getFile → download)
- POST /sendMessage        - sendMessage to the configured chat
- POST /sendFile           - sendPhoto / sendVideo / sendDocument by MIME type
- POST /getFile            - getFile with file_path rewritten to a full URL
- POST /deleteNotification - legacy alias: sendMessage with notificationText
- POST /setReaction        - setMessageReaction in the configured chat
- POST /verify             - shared-secret check

Response contract:
- success → 200 with the provider's JSON body
- provider/transport failure → 500 with the provider's error body, or
  ``{"ok": false, "description": ...}`` when there is none
- client input errors → 400, secret mismatch → 401
"""
from __future__ import annotations

from typing import Any

import aiohttp
from fastapi import APIRouter, Body, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse

from tgrelay.config import Settings
from tgrelay.infra.logging_config import LogContext, get_logger
from tgrelay.transport.media import MediaFetchError, classify_upload, relay_stream
from tgrelay.transport.schemas import ErrorOut, VerifyOut
from tgrelay.transport.security import verify_shared_secret
from tgrelay.transport.telegram_client import ForwardResult, TelegramClient

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["relay"])


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_app_settings(request: Request) -> Settings:
    """Get settings from app state"""
    return request.app.state.settings


def get_telegram(request: Request) -> TelegramClient:
    """Get the Telegram client from app state"""
    return request.app.state.telegram


def _log_ctx(request: Request, endpoint: str) -> LogContext:
    return LogContext(
        logger,
        request_id=getattr(request.state, "request_id", None),
        endpoint=endpoint,
    )


def _error(status_code: int, description: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorOut(description=description).model_dump())


def _relay(result: ForwardResult, log_ctx: LogContext) -> JSONResponse:
    """Map a provider result onto the relay's response contract."""
    if result.ok:
        return JSONResponse(status_code=200, content=result.data)

    log_ctx.error(f"Provider call failed: status={result.status}, error={result.error}")
    return JSONResponse(status_code=500, content=result.error)


# ============================================================================
# UPDATES & MEDIA
# ============================================================================

@router.get("/getUpdates")
async def get_updates(
    request: Request,
    offset: int | None = Query(default=None),
    timeout: int | None = Query(default=None, ge=0),
    telegram: TelegramClient = Depends(get_telegram),
):
    log_ctx = _log_ctx(request, "getUpdates")
    result = await telegram.get_updates(offset=offset, timeout=timeout)

    if not result.ok:
        log_ctx.error(f"getUpdates failed: status={result.status}, error={result.error}")
        return _error(500, "Failed to fetch updates")

    return JSONResponse(status_code=200, content=result.data)


@router.get("/media")
async def get_media(
    request: Request,
    file_id: str | None = Query(default=None),
    settings: Settings = Depends(get_app_settings),
    telegram: TelegramClient = Depends(get_telegram),
):
    """
    Stream a Telegram file to the client.

    Content-Type is inferred from the file extension (see
    ``MEDIA_CONTENT_TYPES``); other extensions are streamed without one.
    """
    log_ctx = _log_ctx(request, "media")
    if not file_id:
        return _error(400, "file_id is required")

    try:
        stream = await telegram.open_media(file_id)
    except MediaFetchError as exc:
        log_ctx.error(f"Media fetch failed: file_id={file_id[:20]}, status={exc.status}, error={exc}")
        return _error(500, "Failed to fetch media")

    log_ctx.info(f"Streaming media: file_id={file_id[:20]}, content_type={stream.content_type}")
    return StreamingResponse(
        relay_stream(stream.response, settings.media_chunk_size),
        media_type=stream.content_type,
    )


# ============================================================================
# OUTBOUND MESSAGES
# ============================================================================

@router.post("/sendMessage")
async def send_message(
    request: Request,
    payload: dict,
    telegram: TelegramClient = Depends(get_telegram),
):
    result = await telegram.forward("sendMessage", body=telegram.with_chat_target(payload))
    return _relay(result, _log_ctx(request, "sendMessage"))


@router.post("/sendFile")
async def send_file(
    request: Request,
    file: UploadFile | None = File(default=None),
    caption: str | None = Form(default=None),
    reply_parameters: str | None = Form(default=None),
    telegram: TelegramClient = Depends(get_telegram),
):
    """
    Upload one file to the configured chat.

    The whole upload is read into memory before forwarding; no size limit is
    enforced here.
    """
    log_ctx = _log_ctx(request, "sendFile")
    if file is None:
        log_ctx.warning("sendFile rejected: no file in request")
        return _error(400, "No file uploaded.")

    route = classify_upload(file.content_type)
    content = await file.read()

    form = aiohttp.FormData()
    form.add_field("chat_id", str(telegram.chat_id or ""))
    form.add_field(
        route.field,
        content,
        filename=file.filename or route.field,
        content_type=file.content_type or "application/octet-stream",
    )
    if caption:
        form.add_field("caption", caption)
    if reply_parameters:
        form.add_field("reply_parameters", reply_parameters)

    log_ctx.info(f"Forwarding upload via {route.api_method}: size={len(content)}, type={file.content_type}")
    result = await telegram.forward(route.api_method, data=form)
    return _relay(result, log_ctx)


@router.post("/getFile")
async def get_file(
    request: Request,
    payload: dict,
    telegram: TelegramClient = Depends(get_telegram),
):
    result = await telegram.get_file(payload)
    return _relay(result, _log_ctx(request, "getFile"))


@router.post("/deleteNotification")
async def delete_notification(
    request: Request,
    payload: dict,
    telegram: TelegramClient = Depends(get_telegram),
):
    """Legacy alias: send ``notificationText`` as a plain message."""
    text = payload.get("notificationText")
    if not isinstance(text, str) or not text.strip():
        return _error(400, "notificationText is required")

    result = await telegram.forward("sendMessage", body=telegram.with_chat_target({"text": text}))
    return _relay(result, _log_ctx(request, "deleteNotification"))


@router.post("/setReaction")
async def set_reaction(
    request: Request,
    payload: dict,
    telegram: TelegramClient = Depends(get_telegram),
):
    result = await telegram.forward("setMessageReaction", body=telegram.with_chat_target(payload))
    return _relay(result, _log_ctx(request, "setReaction"))


# ============================================================================
# AUTH
# ============================================================================

@router.post("/verify", response_model=VerifyOut)
async def verify(
    request: Request,
    payload: Any = Body(default=None),
    settings: Settings = Depends(get_app_settings),
):
    submitted = payload.get("secret") if isinstance(payload, dict) else None

    if verify_shared_secret(submitted, settings.relay_secret):
        return VerifyOut(authenticated=True)

    _log_ctx(request, "verify").warning("Secret verification failed")
    return JSONResponse(status_code=401, content={"authenticated": False})
