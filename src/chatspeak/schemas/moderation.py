"""Data shapes shared by the moderation stages, the queue and observers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ReasonCode(str, Enum):
    """Closed set of reasons a message can be rejected or dropped."""

    EMPTY = "empty"
    URL = "url"
    EMAIL = "email"
    PHONE = "phone"
    MENTION = "mention"
    REPEAT_SPAM = "repeat_spam"
    PUNCT_SPAM = "punct_spam"
    CHARS = "chars"
    EMPTY_NORM = "empty_norm"
    TOO_MANY_WORDS = "too_many_words"
    BADWORD_SPACED = "badword_spaced"
    BADWORD_EXACT = "badword_exact"
    BADWORD_JOINED = "badword_joined"
    BANNED = "banned"
    COOLDOWN = "cooldown"
    QUEUE_FULL = "queue_full"
    QUEUE_RESIZE = "queue_resize"


Origin = Literal["live", "manual"]
Outcome = Literal["queued", "blocked", "dropped"]


@dataclass(frozen=True)
class FilterOutcome:
    accepted: bool
    reason: ReasonCode | None = None
    cleaned_text: str | None = None

    @classmethod
    def reject(cls, reason: ReasonCode) -> "FilterOutcome":
        return cls(accepted=False, reason=reason)

    @classmethod
    def accept(cls, cleaned_text: str) -> "FilterOutcome":
        return cls(accepted=True, cleaned_text=cleaned_text)


class ChatMessage(BaseModel):
    """A message that passed every gate and waits in the dispatch queue."""

    model_config = ConfigDict(frozen=True)

    id: int
    sender_id: str
    display_name: str
    text: str
    submitted_at_ms: int
    origin: Origin = "live"


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    sender_id: str
    display_name: str
    text: str
    timestamp_ms: int
    outcome: Outcome
    reason: ReasonCode | None = None
    tokens: list[str] = Field(default_factory=list)
    origin: Origin = "live"


class BanEntry(BaseModel):
    """A banned sender. ``expires_at_ms`` of None or 0 means permanent."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    sender_id: str
    reason: str = "manual"
    created_at_ms: int = 0
    expires_at_ms: int | None = None

    @property
    def permanent(self) -> bool:
        return not self.expires_at_ms

    def expired(self, now_ms: int) -> bool:
        return not self.permanent and now_ms > (self.expires_at_ms or 0)


class BanCheck(BaseModel):
    banned: bool
    entry: BanEntry | None = None


__all__ = [
    "BanCheck",
    "BanEntry",
    "ChatMessage",
    "FilterOutcome",
    "HistoryEntry",
    "Origin",
    "Outcome",
    "ReasonCode",
]
