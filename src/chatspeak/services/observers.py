"""Fan-out of state-change notifications to connected observers."""

from __future__ import annotations

import asyncio
import itertools
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import WebSocket

logger = logging.getLogger(__name__)

OBSERVER_BUFFER_SIZE = 1000


@dataclass
class ObserverSession:
    """Tracks one subscriber and its pending outbound messages."""

    observer_id: str
    queue: asyncio.Queue[dict[str, Any]] = field(
        default_factory=lambda: asyncio.Queue(maxsize=OBSERVER_BUFFER_SIZE)
    )
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ObserverHub:
    """Publishes ``{"type", "data"}`` messages to every subscriber.

    ``publish`` never waits: messages are buffered per subscriber, and a
    subscriber whose buffer is full is dropped rather than slowing the
    publisher down.
    """

    def __init__(self) -> None:
        self.sessions: Dict[str, ObserverSession] = {}
        self._ids = itertools.count(1)

    def subscribe(self) -> ObserverSession:
        session = ObserverSession(observer_id=f"observer-{next(self._ids)}")
        self.sessions[session.observer_id] = session
        logger.debug("Observer subscribed: %s", session.observer_id)
        return session

    def unsubscribe(self, observer_id: str) -> None:
        if self.sessions.pop(observer_id, None) is not None:
            logger.debug("Observer unsubscribed: %s", observer_id)

    def publish(self, message_type: str, data: Any) -> None:
        message = {"type": message_type, "data": data}
        for observer_id, session in list(self.sessions.items()):
            try:
                session.queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning("Observer %s is not keeping up, disconnecting", observer_id)
                self.unsubscribe(observer_id)

    async def serve(self, websocket: WebSocket, initial: list[tuple[str, Any]]) -> None:
        """Stream messages to ``websocket`` until either side disconnects.

        ``initial`` snapshots are sent first, before any buffered change.
        """

        await websocket.accept()
        session = self.subscribe()
        receiver = asyncio.create_task(self._drain_incoming(websocket))
        try:
            for message_type, data in initial:
                await websocket.send_json({"type": message_type, "data": data})
            while not receiver.done():
                getter = asyncio.create_task(session.queue.get())
                done, _ = await asyncio.wait(
                    {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
                )
                if getter not in done:
                    getter.cancel()
                    with suppress(asyncio.CancelledError):
                        await getter
                    break
                await websocket.send_json(getter.result())
        except Exception as exc:
            logger.info("Observer %s connection closed: %s", session.observer_id, exc)
        finally:
            self.unsubscribe(session.observer_id)
            receiver.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await receiver

    @staticmethod
    async def _drain_incoming(websocket: WebSocket) -> None:
        # Observers only listen; commands arrive over REST.
        while True:
            message = await websocket.receive()
            if message.get("type") == "websocket.disconnect":
                return


__all__ = ["ObserverHub", "ObserverSession"]
