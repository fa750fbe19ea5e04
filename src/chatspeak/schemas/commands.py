"""Request and response bodies for operator commands."""

from typing import Literal

from pydantic import BaseModel, Field

from .moderation import ChatMessage
from .settings import PipelineSettings


class SpeechTogglePayload(BaseModel):
    enabled: bool


class SkipPayload(BaseModel):
    id: int


class ManualMessagePayload(BaseModel):
    sender_id: str = Field(default="local")
    display_name: str | None = None
    text: str
    count: int = Field(default=1, ge=1, le=50)


class ManualMessageResponse(BaseModel):
    ok: bool
    reason: str | None = None
    added: int = 0
    dropped: int = 0
    messages: list[ChatMessage] = Field(default_factory=list)


class BanPayload(BaseModel):
    sender_id: str
    minutes: int | None = 30
    reason: str = "manual"


class UnbanPayload(BaseModel):
    sender_id: str


class ListsPayload(BaseModel):
    """Full replacement text for either list; omitted lists are untouched."""

    exact: str | None = None
    substring: str | None = None


class AddWordPayload(BaseModel):
    word: str
    mode: Literal["exact", "substring"] = "exact"


class SettingsResponse(BaseModel):
    ok: bool = True
    settings: PipelineSettings


class OkResponse(BaseModel):
    ok: bool = True
