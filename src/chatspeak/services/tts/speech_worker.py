"""Single consumer that turns queued messages into speech."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from enum import Enum
from typing import Callable, Mapping

from ...schemas.moderation import ChatMessage
from ..context import PipelineContext
from ..dispatch_queue import DispatchQueue
from .engines import SpeechEngine

logger = logging.getLogger(__name__)

INTER_UTTERANCE_PAUSE_SECONDS = 0.12


class WorkerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class SpeechWorker:
    """Drains the dispatch queue one utterance at a time.

    At most one drain loop exists: ``kick`` moves the worker from IDLE to
    RUNNING synchronously before scheduling the loop task, and the loop
    returns the worker to IDLE once the queue is empty or speech is
    disabled. The current utterance is always allowed to finish.
    """

    def __init__(
        self,
        context: PipelineContext,
        queue: DispatchQueue,
        engines: Mapping[str, SpeechEngine],
        *,
        baseline: str = "system",
        pause_seconds: float = INTER_UTTERANCE_PAUSE_SECONDS,
    ) -> None:
        if baseline not in engines:
            raise ValueError(f"baseline engine {baseline!r} is not registered")
        self._context = context
        self._queue = queue
        self._engines = dict(engines)
        self._baseline = baseline
        self._pause = pause_seconds
        self._state = WorkerState.IDLE
        self._current: ChatMessage | None = None
        self._task: asyncio.Task[None] | None = None
        self._listeners: list[Callable[[], None]] = []

    def add_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    @property
    def engines(self) -> Mapping[str, SpeechEngine]:
        return dict(self._engines)

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def speaking(self) -> bool:
        return self._current is not None

    @property
    def current(self) -> ChatMessage | None:
        return self._current

    @property
    def enabled(self) -> bool:
        return self._context.settings.get().tts_enabled

    def kick(self) -> bool:
        """Start the drain loop if it is idle and there is work to do."""

        if self._state is WorkerState.RUNNING:
            return False
        if not self.enabled or len(self._queue) == 0:
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, speech worker stays idle")
            return False
        self._state = WorkerState.RUNNING
        self._task = loop.create_task(self._run())
        self._changed()
        return True

    async def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        # A task cancelled before its first step never reaches _run's finally.
        if self._state is not WorkerState.IDLE or self._current is not None:
            self._current = None
            self._state = WorkerState.IDLE
            self._changed()

    async def wait_idle(self) -> None:
        """Wait for the current drain loop, if any, to finish."""

        if self._task is not None:
            await asyncio.shield(self._task)

    async def _run(self) -> None:
        try:
            while self.enabled:
                message = self._queue.pop_next()
                if message is None:
                    break
                self._current = message
                self._changed()
                try:
                    await self._speak(message)
                finally:
                    self._current = None
                    self._changed()
                await asyncio.sleep(self._pause)
        finally:
            self._state = WorkerState.IDLE
            self._changed()

    def _engine(self, name: str) -> SpeechEngine:
        return self._engines.get(name) or self._engines[self._baseline]

    async def _speak(self, message: ChatMessage) -> bool:
        settings = self._context.settings.get()
        events = self._context.events
        primary = settings.tts_engine if settings.tts_engine in self._engines else self._baseline
        voice = settings.tts_voice or None

        events.record("tts_speak", engine=primary, msg=message)
        try:
            await self._engine(primary).speak(message.text, voice=voice, rate=settings.tts_rate)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Engine %s failed for message %s: %s", primary, message.id, exc)
            events.record("tts_error", engine=primary, error=str(exc), msg=message)

        if primary == self._baseline:
            return False

        events.record("tts_fallback", engine=self._baseline, failed_engine=primary, msg=message)
        try:
            await self._engine(self._baseline).speak(
                message.text, voice=voice, rate=settings.tts_rate
            )
            return True
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Fallback engine failed for message %s: %s", message.id, exc)
            events.record("tts_error", engine=self._baseline, error=str(exc), msg=message)
            return False

    def _changed(self) -> None:
        for listener in self._listeners:
            listener()


__all__ = ["INTER_UTTERANCE_PAUSE_SECONDS", "SpeechWorker", "WorkerState"]
