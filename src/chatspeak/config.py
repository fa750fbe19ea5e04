"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load process configuration from environment variables and `.env`.

    Runtime moderation settings (cooldowns, queue size, engine tunables)
    live in the settings store instead; these values only change on restart.
    """

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    data_dir: Path = Field(
        default_factory=lambda: Path("data"),
        validation_alias=AliasChoices("CHATSPEAK_DATA_DIR", "data_dir"),
    )
    host: str = Field(
        default="127.0.0.1",
        validation_alias=AliasChoices("CHATSPEAK_HOST", "host"),
    )
    port: int = Field(
        default=5177,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("CHATSPEAK_PORT", "port"),
    )
    logging_settings_path: Path = Field(
        default_factory=lambda: Path("logging_settings.conf"),
        validation_alias=AliasChoices(
            "LOGGING_SETTINGS_PATH",
            "logging_settings_path",
        ),
    )
    event_log_dir: Path = Field(
        default_factory=lambda: Path("logs/events"),
        validation_alias=AliasChoices("EVENT_LOG_DIR", "event_log_dir"),
    )
    reload_interval_seconds: float = Field(
        default=1.5,
        gt=0,
        validation_alias=AliasChoices(
            "RELOAD_INTERVAL_SECONDS",
            "reload_interval_seconds",
        ),
    )
    feed_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("FEED_URL", "feed_url"),
        description="WebSocket URL of the upstream live-chat relay.",
    )
    queue_snapshot_limit: int = Field(
        default=20,
        ge=1,
        validation_alias=AliasChoices(
            "QUEUE_SNAPSHOT_LIMIT",
            "queue_snapshot_limit",
        ),
    )
    log_snapshot_limit: int = Field(
        default=200,
        ge=1,
        validation_alias=AliasChoices("LOG_SNAPSHOT_LIMIT", "log_snapshot_limit"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["PROJECT_ROOT", "Settings", "get_settings"]
