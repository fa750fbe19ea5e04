"""Tests for logging settings parsing."""

import os
import time
from pathlib import Path

from chatspeak.logging_settings import LoggingSettings, parse_logging_settings


def test_parse_logging_settings_with_retention(tmp_path: Path) -> None:
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text(
        """
# Console and event log levels
terminal = debug
events = warning
retention_hours = 72
"""
    )

    settings = parse_logging_settings(config_file)

    assert settings.terminal_level == 10  # DEBUG
    assert settings.events_level == 30  # WARNING
    assert settings.retention_hours == 72


def test_parse_logging_settings_defaults(tmp_path: Path) -> None:
    settings = parse_logging_settings(tmp_path / "nonexistent.conf")

    assert settings.terminal_level == 20  # Default INFO
    assert settings.events_level == 20  # Default INFO
    assert settings.retention_hours == 48


def test_parse_logging_settings_ignores_unknown_keys_and_junk(tmp_path: Path) -> None:
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text(
        """
just some text
conversations = debug
EVENTS = Debug
"""
    )

    settings = parse_logging_settings(config_file)

    assert settings.terminal_level == 20
    assert settings.events_level == 10


def test_parse_logging_settings_invalid_retention(tmp_path: Path) -> None:
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text("retention_hours = invalid\n")

    assert parse_logging_settings(config_file).retention_hours == 48


def test_parse_logging_settings_negative_retention(tmp_path: Path) -> None:
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text("retention_hours = -10\n")

    assert parse_logging_settings(config_file).retention_hours == 0


def test_parse_logging_settings_off_level(tmp_path: Path) -> None:
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text(
        """
terminal = off
events = off
"""
    )

    settings = parse_logging_settings(config_file)

    assert settings.terminal_level is None
    assert settings.events_level is None


def test_unknown_level_falls_back_to_info(tmp_path: Path) -> None:
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text("terminal = loud\n")

    assert parse_logging_settings(config_file).terminal_level == 20


def test_colon_separator_inline_comments_and_error_level(tmp_path: Path) -> None:
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text(
        """
terminal: error   # only problems on the console
events = debug # everything to the event files
"""
    )

    settings = parse_logging_settings(config_file)

    assert settings.terminal_level == 40  # ERROR
    assert settings.events_level == 10


def test_retention_in_days(tmp_path: Path) -> None:
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text("retention_hours = 2d\n")

    assert parse_logging_settings(config_file).retention_hours == 48


def test_prune_events_respects_retention(tmp_path: Path) -> None:
    events_dir = tmp_path / "events" / "2024-01-01"
    events_dir.mkdir(parents=True)
    stale = events_dir / "events_old.log"
    stale.write_text("{}\n")
    old = time.time() - 5 * 3600
    os.utime(stale, (old, old))
    fresh = tmp_path / "events" / "events_new.log"
    fresh.write_text("{}\n")

    assert LoggingSettings(retention_hours=0).prune_events(tmp_path / "events") == 0
    assert stale.exists()

    assert LoggingSettings(retention_hours=4).prune_events(tmp_path / "events") == 1
    assert not stale.exists()
    assert fresh.exists()
    assert not events_dir.exists()
    assert LoggingSettings().events_enabled is True
    assert LoggingSettings(events_level=None).events_enabled is False
