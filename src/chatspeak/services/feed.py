"""Live chat feed connector.

The feed is an upstream WebSocket relay that pushes one JSON object per
chat comment. Connection attempts are operator-initiated: a failed or
dropped connection is reported and never retried automatically.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from typing import Any, Callable, Literal

import websockets
from pydantic import BaseModel

from .pipeline import Pipeline

logger = logging.getLogger(__name__)

FeedState = Literal["idle", "connecting", "connected", "error"]

CONNECT_TIMEOUT_SECONDS = 10.0
FRAME_PREVIEW_CHARS = 200


class FeedStatus(BaseModel):
    status: FeedState = "idle"
    live: bool = False
    last_error: str | None = None
    username: str = ""


def parse_chat_event(raw: str | bytes) -> tuple[str, str, str] | None:
    """Extract ``(sender_id, display_name, text)`` from a relay frame.

    Accepts both snake_case keys and the ``uniqueId``/``nickname``/
    ``comment`` naming used by TikTok relays. Non-chat frames give None.
    """

    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    if payload.get("type", "chat") != "chat":
        return None

    sender = payload.get("sender_id") or payload.get("uniqueId") or "unknown"
    name = payload.get("display_name") or payload.get("nickname") or sender
    text = payload.get("text") or payload.get("comment") or ""
    return str(sender), str(name), str(text)


def _preview(frame: str | bytes) -> str:
    if isinstance(frame, bytes):
        frame = frame.decode("utf-8", errors="replace")
    return frame[:FRAME_PREVIEW_CHARS]


class FeedService:
    """Owns at most one upstream connection and forwards its chat events."""

    def __init__(
        self,
        pipeline: Pipeline,
        url: str | None,
        *,
        connector: Callable[..., Any] = websockets.connect,
    ) -> None:
        self._pipeline = pipeline
        self._url = url
        self._connector = connector
        self._status = FeedStatus()
        self._connection: Any = None
        self._task: asyncio.Task[None] | None = None

    def status(self) -> FeedStatus:
        return self._status

    def _update(self, **changes: Any) -> None:
        self._status = self._status.model_copy(update=changes)
        self._pipeline.context.hub.publish("feed_status", self._status.model_dump())

    async def connect(self) -> dict[str, Any]:
        events = self._pipeline.events
        username = self._pipeline.settings.feed_username

        if not self._url:
            self._update(status="error", live=False, last_error="missing_feed_url")
            return {"ok": False, "error": "missing_feed_url"}
        if self._status.status == "connecting":
            return {"ok": False, "error": "already_connecting"}

        await self.disconnect(reason=None)
        self._update(status="connecting", live=False, last_error=None, username=username)
        try:
            connection = await asyncio.wait_for(
                self._connector(self._url), timeout=CONNECT_TIMEOUT_SECONDS
            )
            if username:
                await connection.send(json.dumps({"type": "subscribe", "username": username}))
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.warning("Feed connection to %s failed: %s", self._url, error)
            self._update(status="error", live=False, last_error=error)
            events.record("feed_connect_failed", error=error)
            return {"ok": False, "error": error}

        self._connection = connection
        self._update(status="connected", live=True)
        events.record("feed_connected", username=username)
        self._task = asyncio.create_task(self._consume(connection))
        return {"ok": True}

    async def _consume(self, connection: Any) -> None:
        try:
            async for frame in connection:
                try:
                    self.handle_frame(frame)
                except Exception:
                    # One bad frame must not end the stream.
                    logger.exception("Failed to handle feed frame")
                    self._pipeline.events.record("feed_frame_error", frame=_preview(frame))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.info("Feed connection closed: %s", exc)
        if connection is self._connection:
            self._connection = None
            self._update(status="idle", live=False)
            self._pipeline.events.record("feed_disconnected", reason="remote")

    def handle_frame(self, frame: str | bytes) -> None:
        event = parse_chat_event(frame)
        if event is None:
            logger.debug("Ignoring non-chat feed frame")
            return
        sender_id, display_name, text = event
        self._pipeline.handle_chat(sender_id, display_name, text)

    async def disconnect(self, reason: str | None = "manual") -> None:
        connection, self._connection = self._connection, None
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        if connection is not None:
            with suppress(Exception):
                await connection.close()
        if reason is None:
            return
        self._update(status="idle", live=False, last_error=None)
        if connection is not None:
            self._pipeline.events.record("feed_disconnected", reason=reason)


__all__ = ["FeedService", "FeedStatus", "parse_chat_event"]
