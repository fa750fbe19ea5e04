"""Ban ledger with lazy expiry and in-memory strike counting."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from ..schemas.moderation import BanCheck, BanEntry
from ..schemas.settings import MAX_BAN_MINUTES
from ..utils.files import StorageError, atomic_write_json, read_json
from .context import PipelineContext

logger = logging.getLogger(__name__)


def _parse_users(payload: Any) -> dict[str, BanEntry]:
    if not isinstance(payload, dict):
        raise ValueError("ban database must be a JSON object")
    raw_users = payload.get("users") or {}
    if not isinstance(raw_users, dict):
        raise ValueError("'users' must be an object")
    users: dict[str, BanEntry] = {}
    for sender_id, raw in raw_users.items():
        data = dict(raw) if isinstance(raw, dict) else {}
        data["sender_id"] = sender_id
        users[sender_id] = BanEntry.model_validate(data)
    return users


def _serialize(users: dict[str, BanEntry]) -> dict[str, Any]:
    return {
        "users": {
            sender_id: entry.model_dump(mode="json", exclude={"sender_id"})
            for sender_id, entry in users.items()
        }
    }


class BanLedger:
    """Durable ``sender_id -> BanEntry`` map plus volatile strike counts.

    Expired entries are removed when they are read, not by a sweeper.
    Strikes are never persisted: a restart forgives strikes, never bans.
    """

    def __init__(self, path: Path, context: PipelineContext) -> None:
        self.path = path
        self._context = context
        self._users: dict[str, BanEntry] = {}
        self._strikes: dict[str, int] = {}

    def load(self) -> None:
        if not self.path.exists():
            self._users = {}
            self._save()
            return
        try:
            self._users = _parse_users(read_json(self.path))
        except (OSError, ValueError) as exc:
            raise StorageError(f"Cannot read ban ledger from {self.path}: {exc}") from exc
        logger.info("Loaded %d ban(s) from %s", len(self._users), self.path)

    def reload(self) -> bool:
        try:
            users = _parse_users(read_json(self.path))
        except (OSError, ValueError) as exc:
            logger.warning("Ban ledger reload failed, keeping current bans: %s", exc)
            return False
        if users == self._users:
            return False
        self._users = users
        self._publish()
        return True

    def snapshot(self) -> dict[str, Any]:
        return _serialize(self._users)

    def is_banned(self, sender_id: str) -> BanCheck:
        entry = self._users.get(sender_id)
        if entry is None:
            return BanCheck(banned=False)
        if entry.expired(self._context.now_ms()):
            del self._users[sender_id]
            self._save_quietly()
            self._publish()
            logger.info("Ban for %s expired", sender_id)
            return BanCheck(banned=False)
        return BanCheck(banned=True, entry=entry)

    def ban(self, sender_id: str, reason: str = "manual", minutes: int | None = 30) -> BanEntry:
        """Ban ``sender_id``; ``minutes=None`` bans permanently.

        Numeric durations are clamped to ``[1, 1440]`` minutes. A repeated
        ban replaces the previous entry. Raises ``StorageError`` when the
        ledger cannot be written; the in-memory bans are unchanged then.
        """

        entry = self._new_entry(sender_id, reason, minutes)
        users = {**self._users, sender_id: entry}
        self._save(users)
        self._users = users
        self._banned(entry)
        return entry

    def unban(self, sender_id: str) -> bool:
        if sender_id not in self._users:
            return False
        users = {key: entry for key, entry in self._users.items() if key != sender_id}
        self._save(users)
        self._users = users
        self._publish()
        self._context.events.record("user_unbanned", sender_id=sender_id)
        return True

    def add_strike(self, sender_id: str) -> int:
        """Count a filter violation; returns the count that was reached.

        Reaching the auto-ban threshold bans the sender and resets the
        counter to zero. An auto-ban that cannot be written still holds
        in memory until the next restart.
        """

        count = self._strikes.get(sender_id, 0) + 1
        self._strikes[sender_id] = count

        policy = self._context.settings.get().auto_ban
        if policy.enabled and count >= policy.strike_threshold:
            entry = self._new_entry(sender_id, f"Auto-ban: {count} strikes", policy.ban_minutes)
            self._users[sender_id] = entry
            self._save_quietly()
            self._banned(entry)
            self._strikes[sender_id] = 0
            self._context.events.record("auto_ban", sender_id=sender_id, strikes=count)
        return count

    def strike_count(self, sender_id: str) -> int:
        return self._strikes.get(sender_id, 0)

    def _new_entry(self, sender_id: str, reason: str, minutes: int | None) -> BanEntry:
        now_ms = self._context.now_ms()
        expires_at_ms: int | None = None
        if minutes is not None:
            minutes = max(1, min(MAX_BAN_MINUTES, int(minutes)))
            expires_at_ms = now_ms + minutes * 60 * 1000
        return BanEntry(
            sender_id=sender_id,
            reason=reason,
            created_at_ms=now_ms,
            expires_at_ms=expires_at_ms,
        )

    def _banned(self, entry: BanEntry) -> None:
        self._publish()
        minutes = None
        if entry.expires_at_ms is not None:
            minutes = (entry.expires_at_ms - entry.created_at_ms) // 60_000
        self._context.events.record(
            "user_banned", sender_id=entry.sender_id, reason=entry.reason, minutes=minutes
        )

    def _save(self, users: dict[str, BanEntry] | None = None) -> None:
        atomic_write_json(self.path, _serialize(self._users if users is None else users))

    def _save_quietly(self) -> None:
        """Persist a change made on the chat path; failures keep memory as is."""

        try:
            self._save()
        except StorageError as exc:
            logger.error("Ban ledger not saved, keeping in-memory bans: %s", exc)
            self._context.events.record("storage_error", path=str(self.path), error=str(exc))

    def _publish(self) -> None:
        self._context.hub.publish("bans", self.snapshot())


__all__ = ["BanLedger"]
