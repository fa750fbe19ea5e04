"""Global and per-sender spacing between accepted messages."""

from __future__ import annotations

from .context import PipelineContext

PRUNE_THRESHOLD = 10_000


class CooldownGate:
    """Admits a message only when both cooldown floors have elapsed.

    ``try_acquire`` checks and stamps in one synchronous step, so on the
    event loop no other caller can act on a stale timestamp in between.
    """

    def __init__(self, context: PipelineContext) -> None:
        self._context = context
        self._last_global: float | None = None
        self._last_by_sender: dict[str, float] = {}

    def try_acquire(self, sender_id: str, now: float | None = None) -> bool:
        if now is None:
            now = self._context.monotonic()
        settings = self._context.settings.get()

        if self._last_global is not None:
            if (now - self._last_global) * 1000 < settings.global_cooldown_ms:
                return False
        last = self._last_by_sender.get(sender_id)
        if last is not None and (now - last) * 1000 < settings.per_user_cooldown_ms:
            return False

        self._last_global = now
        self._last_by_sender[sender_id] = now
        if len(self._last_by_sender) > PRUNE_THRESHOLD:
            self._prune(now, settings.per_user_cooldown_ms)
        return True

    def _prune(self, now: float, per_user_cooldown_ms: int) -> None:
        horizon = per_user_cooldown_ms / 1000
        self._last_by_sender = {
            sender_id: stamp
            for sender_id, stamp in self._last_by_sender.items()
            if now - stamp < horizon
        }

    def reset(self) -> None:
        self._last_global = None
        self._last_by_sender.clear()


__all__ = ["CooldownGate"]
