"""Runtime settings schema for the moderation and speech pipeline."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SpeechEngineName = Literal["system", "piper"]

MAX_BAN_MINUTES = 24 * 60


def _clamp(value: float, low: float | None = None, high: float | None = None) -> Any:
    if low is not None and value < low:
        return type(value)(low)
    if high is not None and value > high:
        return type(value)(high)
    return value


class PiperSettings(BaseModel):
    """Tunables for the process-based Piper engine."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    model_path: str = Field(default="", description="Path to the .onnx voice model.")
    length_scale: float = Field(default=1.0, description="Speaking pace; higher is slower.")
    volume: float = Field(default=1.0)
    python_cmd: str = Field(
        default="python",
        description="Interpreter used to run `-m piper`.",
    )

    @field_validator("length_scale")
    @classmethod
    def _clamp_length_scale(cls, value: float) -> float:
        return _clamp(value, 0.5, 2.5)

    @field_validator("volume")
    @classmethod
    def _clamp_volume(cls, value: float) -> float:
        return _clamp(value, 0.0, 2.0)

    @field_validator("python_cmd")
    @classmethod
    def _default_python_cmd(cls, value: str) -> str:
        return value.strip() or "python"


class AutoBanSettings(BaseModel):
    """Strike policy that turns repeated filter violations into a ban."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    enabled: bool = True
    strike_threshold: int = 3
    ban_minutes: int = 30

    @field_validator("strike_threshold")
    @classmethod
    def _clamp_threshold(cls, value: int) -> int:
        return _clamp(value, 1)

    @field_validator("ban_minutes")
    @classmethod
    def _clamp_ban_minutes(cls, value: int) -> int:
        return _clamp(value, 1, MAX_BAN_MINUTES)


class PipelineSettings(BaseModel):
    """Immutable snapshot of every live-tunable setting.

    Snapshots are replaced as a whole by the settings store; fields are
    clamped into range on construction so a snapshot is always usable.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    tts_enabled: bool = True
    global_cooldown_ms: int = 1500
    per_user_cooldown_ms: int = 8000
    max_queue: int = 6
    max_chars: int = 120
    max_words: int = 20
    history_size: int = 25

    tts_engine: SpeechEngineName = "system"
    tts_rate: float = 1.0
    tts_voice: str = ""

    piper: PiperSettings = Field(default_factory=PiperSettings)
    auto_ban: AutoBanSettings = Field(default_factory=AutoBanSettings)

    feed_username: str = ""

    @field_validator("global_cooldown_ms", "per_user_cooldown_ms")
    @classmethod
    def _clamp_cooldown(cls, value: int) -> int:
        return _clamp(value, 0)

    @field_validator("max_queue", "max_chars", "max_words")
    @classmethod
    def _clamp_positive(cls, value: int) -> int:
        return _clamp(value, 1)

    @field_validator("history_size")
    @classmethod
    def _clamp_history(cls, value: int) -> int:
        return _clamp(value, 5)

    @field_validator("tts_rate")
    @classmethod
    def _clamp_rate(cls, value: float) -> float:
        return _clamp(value, 0.5, 2.0)

    @field_validator("feed_username")
    @classmethod
    def _strip_username(cls, value: str) -> str:
        return value.strip().lstrip("@")


class PiperSettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model_path: str | None = None
    length_scale: float | None = None
    volume: float | None = None
    python_cmd: str | None = None


class AutoBanSettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool | None = None
    strike_threshold: int | None = None
    ban_minutes: int | None = None


class PipelineSettingsUpdate(BaseModel):
    """Partial update schema - all fields optional, unknown keys ignored."""

    model_config = ConfigDict(extra="ignore")

    tts_enabled: bool | None = None
    global_cooldown_ms: int | None = None
    per_user_cooldown_ms: int | None = None
    max_queue: int | None = None
    max_chars: int | None = None
    max_words: int | None = None
    history_size: int | None = None
    tts_engine: SpeechEngineName | None = None
    tts_rate: float | None = None
    tts_voice: str | None = None
    piper: PiperSettingsUpdate | None = None
    auto_ban: AutoBanSettingsUpdate | None = None
    feed_username: str | None = None


def merge_settings(
    current: PipelineSettings, update: PipelineSettingsUpdate
) -> PipelineSettings:
    """Apply the non-None fields of ``update`` on top of ``current``."""

    data = current.model_dump()
    changes = update.model_dump(exclude_none=True)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value
    return PipelineSettings.model_validate(data)


__all__ = [
    "AutoBanSettings",
    "AutoBanSettingsUpdate",
    "MAX_BAN_MINUTES",
    "PiperSettings",
    "PiperSettingsUpdate",
    "PipelineSettings",
    "PipelineSettingsUpdate",
    "SpeechEngineName",
    "merge_settings",
]
