"""Poll-based change notifications for externally edited files."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Path], None]
Fingerprint = tuple[int, int] | None


def _fingerprint(path: Path) -> Fingerprint:
    try:
        stat = path.stat()
    except FileNotFoundError:
        return None
    return (stat.st_mtime_ns, stat.st_size)


class FileWatcher:
    """Calls subscribers when a watched file's mtime or size changes.

    Subscribers decide what a change means; they are expected to keep
    their previous state when the new content is unreadable.
    """

    def __init__(self, interval_seconds: float = 1.5) -> None:
        self._interval = interval_seconds
        self._watches: dict[Path, list[ChangeCallback]] = {}
        self._fingerprints: dict[Path, Fingerprint] = {}
        self._task: asyncio.Task[None] | None = None

    def watch(self, path: Path, callback: ChangeCallback) -> None:
        self._watches.setdefault(path, []).append(callback)
        self._fingerprints.setdefault(path, _fingerprint(path))

    def poll(self) -> list[Path]:
        """Check every watched path once; returns the paths that changed."""

        changed: list[Path] = []
        for path, callbacks in self._watches.items():
            current = _fingerprint(path)
            if current == self._fingerprints.get(path):
                continue
            self._fingerprints[path] = current
            changed.append(path)
            for callback in callbacks:
                try:
                    callback(path)
                except Exception as exc:
                    logger.error("Reload handler for %s failed: %s", path, exc, exc_info=True)
        return changed

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.poll()


__all__ = ["FileWatcher"]
