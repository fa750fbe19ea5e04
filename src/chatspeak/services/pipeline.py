"""Moderation-and-dispatch pipeline: ingest, operator commands, snapshots."""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

from ..moderation.content_filter import FilterLimits, filter_message
from ..moderation.normalizer import normalize, tokenize
from ..moderation.word_lists import ListMode, WordLists
from ..schemas.moderation import ChatMessage, HistoryEntry, Origin, Outcome, ReasonCode
from ..schemas.settings import PipelineSettings, PipelineSettingsUpdate
from .ban_ledger import BanLedger
from .context import PipelineContext
from .cooldown import CooldownGate
from .dispatch_queue import DispatchQueue
from .event_log import EventLog
from .file_watcher import FileWatcher
from .history import ActivityHistory
from .observers import ObserverHub
from .settings_store import SettingsStore
from .tts.engines import PiperSpeechEngine, SpeechEngine, SystemSpeechEngine
from .tts.speech_worker import INTER_UTTERANCE_PAUSE_SECONDS, SpeechWorker

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"
BANS_FILE = "banned_users.json"
EXACT_LIST_FILE = "badwords_exact.txt"
SUBSTRING_LIST_FILE = "badwords_substring.txt"

MAX_TEST_COUNT = 50
HISTORY_TOKEN_MIN_LENGTH = 3
HISTORY_TOKEN_LIMIT = 10


@dataclass(frozen=True)
class IngestResult:
    accepted: bool
    reason: ReasonCode | None = None
    message: ChatMessage | None = None
    strikes: int | None = None


@dataclass(frozen=True)
class ManualEnqueueResult:
    ok: bool
    reason: ReasonCode | None = None
    added: int = 0
    dropped: int = 0
    messages: list[ChatMessage] = field(default_factory=list)


def extract_tokens(text: str) -> list[str]:
    """Distinct canonical tokens worth offering to operators as ban words."""

    seen: dict[str, None] = {}
    for token in tokenize(normalize(text)):
        if len(token) >= HISTORY_TOKEN_MIN_LENGTH:
            seen.setdefault(token, None)
    return list(seen)[:HISTORY_TOKEN_LIMIT]


def clean_sender_id(sender_id: str | None) -> str:
    return (sender_id or "").strip().lstrip("@")


class Pipeline:
    """Routes every chat message through ban, filter, cooldown and queue.

    Rejections are returned as values and recorded in both the activity
    history and the structured event log; nothing is dropped silently.
    """

    def __init__(
        self,
        context: PipelineContext,
        *,
        ledger: BanLedger,
        word_lists: WordLists,
        queue: DispatchQueue,
        cooldown: CooldownGate,
        history: ActivityHistory,
        worker: SpeechWorker,
        queue_snapshot_limit: int = 20,
    ) -> None:
        self.context = context
        self.ledger = ledger
        self.word_lists = word_lists
        self.queue = queue
        self.cooldown = cooldown
        self.history = history
        self.worker = worker
        self._queue_snapshot_limit = queue_snapshot_limit
        self._ids = itertools.count(1)

        queue.add_listener(self._publish_queue)
        worker.add_listener(self._publish_queue)
        context.settings.add_listener(self._on_settings_changed)

    @property
    def settings(self) -> PipelineSettings:
        return self.context.settings.get()

    @property
    def events(self) -> EventLog:
        return self.context.events

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def handle_chat(
        self,
        sender_id: str | None,
        display_name: str | None,
        text: str | None,
        *,
        origin: Origin = "live",
    ) -> IngestResult:
        """Classify one chat event and enqueue it when every gate passes.

        Never waits on speech; the worker is only kicked.
        """

        sender = clean_sender_id(sender_id) or "unknown"
        name = (display_name or "").strip() or sender
        raw = text or ""
        details = {"sender_id": sender, "display_name": name, "comment": raw, "source": origin}

        ban = self.ledger.is_banned(sender)
        if ban.banned:
            self.events.record(
                "blocked_banned_user",
                reason=ban.entry.reason if ban.entry else None,
                **details,
            )
            self._record_history(sender, name, raw, "blocked", ReasonCode.BANNED, origin)
            return IngestResult(accepted=False, reason=ReasonCode.BANNED)

        settings = self.settings
        outcome = filter_message(
            raw,
            FilterLimits(max_chars=settings.max_chars, max_words=settings.max_words),
            self.word_lists.vocabulary,
        )
        if not outcome.accepted:
            strikes = self.ledger.add_strike(sender) if origin == "live" else 0
            self.events.record(
                "blocked_filter", reason=outcome.reason, strikes=strikes, **details
            )
            self._record_history(sender, name, raw, "blocked", outcome.reason, origin)
            return IngestResult(accepted=False, reason=outcome.reason, strikes=strikes)

        cleaned = outcome.cleaned_text or ""
        if origin == "live" and not self.cooldown.try_acquire(sender):
            self.events.record("blocked_cooldown", reason=ReasonCode.COOLDOWN, **details)
            self._record_history(sender, name, raw, "blocked", ReasonCode.COOLDOWN, origin)
            return IngestResult(accepted=False, reason=ReasonCode.COOLDOWN)

        message = self._new_message(sender, name, cleaned, origin)
        if not self._enqueue(message):
            return IngestResult(accepted=False, reason=ReasonCode.QUEUE_FULL)
        return IngestResult(accepted=True, message=message)

    def enqueue_test(
        self,
        sender_id: str | None,
        display_name: str | None,
        text: str,
        count: int = 1,
    ) -> ManualEnqueueResult:
        """Operator test message: checked like chat, queued ``count`` times.

        Test messages skip the cooldown gate and never add strikes.
        """

        count = max(1, min(MAX_TEST_COUNT, int(count)))
        sender = clean_sender_id(sender_id) or "local"
        name = (display_name or "").strip() or sender

        first = self.handle_chat(sender, name, text, origin="manual")
        if first.message is None:
            return ManualEnqueueResult(
                ok=False,
                reason=first.reason,
                dropped=1 if first.reason is ReasonCode.QUEUE_FULL else 0,
            )

        messages = [first.message]
        dropped = 0
        for _ in range(count - 1):
            message = self._new_message(sender, name, first.message.text, "manual")
            if self._enqueue(message):
                messages.append(message)
            else:
                dropped += 1
        return ManualEnqueueResult(ok=True, added=len(messages), dropped=dropped, messages=messages)

    def _new_message(self, sender: str, name: str, text: str, origin: Origin) -> ChatMessage:
        return ChatMessage(
            id=next(self._ids),
            sender_id=sender,
            display_name=name,
            text=text,
            submitted_at_ms=self.context.now_ms(),
            origin=origin,
        )

    def _enqueue(self, message: ChatMessage) -> bool:
        if not self.queue.enqueue(message):
            self.events.record("queue_drop", reason=ReasonCode.QUEUE_FULL, msg=message)
            self._record_history(
                message.sender_id,
                message.display_name,
                message.text,
                "dropped",
                ReasonCode.QUEUE_FULL,
                message.origin,
                message_id=message.id,
            )
            return False
        self._record_history(
            message.sender_id,
            message.display_name,
            message.text,
            "queued",
            None,
            message.origin,
            message_id=message.id,
        )
        self.events.record("queued", msg=message)
        self.worker.kick()
        return True

    def _record_history(
        self,
        sender: str,
        name: str,
        text: str,
        outcome: Outcome,
        reason: ReasonCode | None,
        origin: Origin,
        *,
        message_id: int | None = None,
    ) -> None:
        self.history.append(
            HistoryEntry(
                id=message_id if message_id is not None else next(self._ids),
                sender_id=sender,
                display_name=name,
                text=text,
                timestamp_ms=self.context.now_ms(),
                outcome=outcome,
                reason=reason,
                tokens=extract_tokens(text),
                origin=origin,
            )
        )

    # ------------------------------------------------------------------
    # Operator commands
    # ------------------------------------------------------------------

    def skip(self, message_id: int) -> bool:
        removed = self.queue.skip(message_id)
        if removed is None:
            return False
        self.events.record("queue_skip", msg=removed)
        return True

    def clear(self) -> int:
        removed = self.queue.clear()
        self.events.record("queue_clear", count=len(removed))
        return len(removed)

    def set_speech_enabled(self, enabled: bool) -> PipelineSettings:
        return self.update_settings(PipelineSettingsUpdate(tts_enabled=enabled))

    def update_settings(
        self, update: PipelineSettingsUpdate | Mapping[str, Any]
    ) -> PipelineSettings:
        settings = self.context.settings.update(update)
        self.events.record("settings_updated", settings=settings)
        return settings

    def reset_settings(self) -> PipelineSettings:
        settings = self.context.settings.reset()
        self.events.record("settings_updated", settings=settings)
        return settings

    def replace_lists(self, *, exact: str | None = None, substring: str | None = None) -> None:
        self.word_lists.replace(exact=exact, substring=substring)
        self.context.hub.publish("lists", self.word_lists.snapshot())

    def add_word(self, word: str, mode: ListMode = "exact") -> str | None:
        added = self.word_lists.add_word(word, mode)
        if added is not None:
            self.events.record("word_added", word=added, mode=mode)
            self.context.hub.publish("lists", self.word_lists.snapshot())
        return added

    def _on_settings_changed(
        self, previous: PipelineSettings, current: PipelineSettings
    ) -> None:
        if current.max_queue < len(self.queue):
            for message in self.queue.truncate(current.max_queue):
                self.events.record("queue_drop", reason=ReasonCode.QUEUE_RESIZE, msg=message)
                self._record_history(
                    message.sender_id,
                    message.display_name,
                    message.text,
                    "dropped",
                    ReasonCode.QUEUE_RESIZE,
                    message.origin,
                    message_id=message.id,
                )
        if current.history_size < previous.history_size:
            self.history.shrink(current.history_size)

        self.context.hub.publish("settings", current.model_dump(mode="json"))
        self._publish_status()
        if current.tts_enabled and not previous.tts_enabled:
            self.worker.kick()

    # ------------------------------------------------------------------
    # Hot reload
    # ------------------------------------------------------------------

    def watch_files(self, watcher: FileWatcher) -> None:
        watcher.watch(self.word_lists.exact_path, self._reload_lists)
        watcher.watch(self.word_lists.substring_path, self._reload_lists)
        watcher.watch(self.ledger.path, self._reload_bans)
        watcher.watch(self.context.settings.path, self._reload_settings)

    def _reload_lists(self, path: Path) -> None:
        before = self.word_lists.vocabulary
        if not self.word_lists.reload():
            self.events.record("lists_reload_failed", path=str(path))
            return
        if self.word_lists.vocabulary == before:
            return
        self.events.record("lists_reloaded", path=str(path))
        self.context.hub.publish("lists", self.word_lists.snapshot())

    def _reload_bans(self, path: Path) -> None:
        if self.ledger.reload():
            self.events.record("bans_reloaded", path=str(path))

    def _reload_settings(self, path: Path) -> None:
        if self.context.settings.reload():
            self.events.record("settings_reloaded", path=str(path))

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def status_snapshot(self) -> dict[str, Any]:
        return {
            "tts_enabled": self.settings.tts_enabled,
            "speaking": self.worker.speaking,
            "queue_size": len(self.queue),
        }

    def queue_snapshot(self) -> dict[str, Any]:
        current = self.worker.current
        return {
            "tts_enabled": self.settings.tts_enabled,
            "speaking": self.worker.speaking,
            "capacity": self.queue.capacity,
            "size": len(self.queue),
            "current": current.model_dump(mode="json") if current else None,
            "items": [
                item.model_dump(mode="json")
                for item in self.queue.items(self._queue_snapshot_limit)
            ],
        }

    def initial_snapshots(self) -> list[tuple[str, Any]]:
        return [
            ("status", self.status_snapshot()),
            ("queue", self.queue_snapshot()),
            ("bans", self.ledger.snapshot()),
            ("lists", self.word_lists.snapshot()),
            ("settings", self.settings.model_dump(mode="json")),
            ("history_bulk", self.history.snapshot()),
            ("log_bulk", self.events.snapshot()),
        ]

    def _publish_queue(self) -> None:
        self.context.hub.publish("queue", self.queue_snapshot())
        self._publish_status()

    def _publish_status(self) -> None:
        self.context.hub.publish("status", self.status_snapshot())


def build_pipeline(
    data_dir: Path,
    *,
    hub: ObserverHub | None = None,
    engines: Mapping[str, SpeechEngine] | None = None,
    clock: Callable[[], float] = time.time,
    monotonic: Callable[[], float] = time.monotonic,
    pause_seconds: float = INTER_UTTERANCE_PAUSE_SECONDS,
    queue_snapshot_limit: int = 20,
    log_snapshot_limit: int = 200,
) -> Pipeline:
    """Create and load a pipeline whose files live under ``data_dir``.

    Raises ``StorageError`` if the settings or ban files are unreadable.
    """

    data_dir.mkdir(parents=True, exist_ok=True)
    hub = hub or ObserverHub()
    settings_store = SettingsStore(data_dir / SETTINGS_FILE)
    settings_store.load()

    context = PipelineContext(
        settings=settings_store,
        hub=hub,
        events=EventLog(hub, limit=log_snapshot_limit, clock=clock),
        clock=clock,
        monotonic=monotonic,
    )

    ledger = BanLedger(data_dir / BANS_FILE, context)
    ledger.load()

    word_lists = WordLists(data_dir / EXACT_LIST_FILE, data_dir / SUBSTRING_LIST_FILE)
    if not word_lists.reload():
        logger.warning("Starting with empty word lists")

    if engines is None:
        engines = {
            "system": SystemSpeechEngine(),
            "piper": PiperSpeechEngine(lambda: settings_store.get().piper),
        }

    queue = DispatchQueue(context)
    worker = SpeechWorker(context, queue, engines, pause_seconds=pause_seconds)
    return Pipeline(
        context,
        ledger=ledger,
        word_lists=word_lists,
        queue=queue,
        cooldown=CooldownGate(context),
        history=ActivityHistory(context),
        worker=worker,
        queue_snapshot_limit=queue_snapshot_limit,
    )


__all__ = [
    "IngestResult",
    "Pipeline",
    "ManualEnqueueResult",
    "build_pipeline",
    "extract_tokens",
]
