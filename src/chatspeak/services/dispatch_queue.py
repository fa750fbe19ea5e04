"""Bounded FIFO of accepted messages waiting to be spoken."""

from __future__ import annotations

from collections import deque
from typing import Callable, Iterator

from ..schemas.moderation import ChatMessage
from .context import PipelineContext

QueueListener = Callable[[], None]


class DispatchQueue:
    """Strict FIFO whose capacity is read from the current settings.

    A full queue rejects the incoming message; existing items are never
    evicted to make room.
    """

    def __init__(self, context: PipelineContext) -> None:
        self._context = context
        self._items: deque[ChatMessage] = deque()
        self._listeners: list[QueueListener] = []

    def add_listener(self, listener: QueueListener) -> None:
        self._listeners.append(listener)

    @property
    def capacity(self) -> int:
        return self._context.settings.get().max_queue

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(list(self._items))

    def is_full(self) -> bool:
        return len(self._items) >= self.capacity

    def enqueue(self, message: ChatMessage) -> bool:
        if self.is_full():
            return False
        self._items.append(message)
        self._changed()
        return True

    def pop_next(self) -> ChatMessage | None:
        if not self._items:
            return None
        message = self._items.popleft()
        self._changed()
        return message

    def skip(self, message_id: int) -> ChatMessage | None:
        """Remove a not-yet-spoken message by id, wherever it sits."""

        for message in self._items:
            if message.id == message_id:
                self._items.remove(message)
                self._changed()
                return message
        return None

    def clear(self) -> list[ChatMessage]:
        removed = list(self._items)
        self._items.clear()
        self._changed()
        return removed

    def truncate(self, capacity: int) -> list[ChatMessage]:
        """Evict the most recently enqueued items until ``capacity`` fits.

        Returns the evicted messages, oldest first.
        """

        evicted: list[ChatMessage] = []
        while len(self._items) > capacity:
            evicted.append(self._items.pop())
        if evicted:
            evicted.reverse()
            self._changed()
        return evicted

    def items(self, limit: int | None = None) -> list[ChatMessage]:
        items = list(self._items)
        return items if limit is None else items[:limit]

    def _changed(self) -> None:
        for listener in self._listeners:
            listener()


__all__ = ["DispatchQueue", "QueueListener"]
