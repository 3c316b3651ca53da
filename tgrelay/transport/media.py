# tgrelay/transport/media.py
"""
Media helpers for the relay.

- ``classify_upload()``: choose the Bot API method and multipart field for an
  uploaded file by MIME prefix (photo / video / document).
- ``content_type_for_path()``: infer a Content-Type from the extension of a
  Telegram ``file_path``; unknown extensions get no override.
- ``relay_stream()``: yield an upstream download chunk by chunk. When the
  client disconnects the generator is closed and the upstream connection is
  closed with it, so the download does not keep running in the background.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import AsyncIterator

import aiohttp

from tgrelay.infra.logging_config import get_logger
from tgrelay.infra.metrics import inc_counter

logger = get_logger(__name__)


class MediaFetchError(Exception):
    """
    Media could not be resolved or downloaded.

    Attributes:
        status: Upstream HTTP status (0 for connection-level errors).
    """

    def __init__(self, message: str, status: int = 0):
        self.status = status
        super().__init__(message)


@dataclass(frozen=True)
class UploadRoute:
    """Bot API method and multipart field an upload is sent with."""

    api_method: str
    field: str


PHOTO = UploadRoute("sendPhoto", "photo")
VIDEO = UploadRoute("sendVideo", "video")
DOCUMENT = UploadRoute("sendDocument", "document")

MEDIA_CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "webm": "video/webm",
}


def classify_upload(mime_type: str | None) -> UploadRoute:
    """Route ``image/*`` to sendPhoto, ``video/*`` to sendVideo, anything else to sendDocument."""
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return PHOTO
    if mime.startswith("video/"):
        return VIDEO
    return DOCUMENT


def content_type_for_path(file_path: str) -> str | None:
    ext = PurePosixPath(file_path).suffix.lstrip(".").lower()
    return MEDIA_CONTENT_TYPES.get(ext)


async def relay_stream(
    resp: aiohttp.ClientResponse,
    chunk_size: int = 64 * 1024,
) -> AsyncIterator[bytes]:
    """
    Yield the body of ``resp`` in chunks, then release it.

    The response status has already been sent when this runs, so an upstream
    error mid-body can only be logged; the client sees a truncated body.
    """
    completed = False
    sent = 0
    try:
        async for chunk in resp.content.iter_chunked(chunk_size):
            sent += len(chunk)
            yield chunk
        completed = True
    except aiohttp.ClientError as exc:
        logger.error(f"Media stream broken after {sent} bytes: {exc.__class__.__name__}: {exc}")
        inc_counter("media_stream_errors_total")
    finally:
        if completed:
            resp.release()
            logger.debug(f"Media stream completed: {sent} bytes")
        else:
            # Client went away (generator closed/cancelled) or upstream broke
            resp.close()
            logger.info(f"Media stream closed early after {sent} bytes")
            inc_counter("media_stream_aborted_total")
