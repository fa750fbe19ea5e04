"""Bounded record of what happened to each incoming message."""

from __future__ import annotations

from collections import deque

from ..schemas.moderation import HistoryEntry
from .context import PipelineContext


class ActivityHistory:
    """Append-only ring buffer; the oldest entries are evicted first."""

    def __init__(self, context: PipelineContext) -> None:
        self._context = context
        self._entries: deque[HistoryEntry] = deque()

    @property
    def capacity(self) -> int:
        return self._context.settings.get().history_size

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)
        self._evict(self.capacity)
        self._context.hub.publish("history", entry.model_dump(mode="json"))

    def shrink(self, capacity: int) -> int:
        """Drop oldest entries beyond ``capacity``; returns how many went."""

        removed = self._evict(capacity)
        if removed:
            self._context.hub.publish("history_bulk", self.snapshot())
        return removed

    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    def snapshot(self) -> list[dict]:
        return [entry.model_dump(mode="json") for entry in self._entries]

    def _evict(self, capacity: int) -> int:
        removed = 0
        while len(self._entries) > capacity:
            self._entries.popleft()
            removed += 1
        return removed


__all__ = ["ActivityHistory"]
