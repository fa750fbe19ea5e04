"""Reader for ``logging_settings.conf``, the operator's log switchboard.

Each line is ``key = value`` (``key: value`` works too, and ``#`` starts a
comment). ``terminal`` and ``events`` take a level name or ``off``;
``retention_hours`` takes a number of hours, or days with a ``d`` suffix.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Iterator

from .logging_handlers import cleanup_old_logs

CHANNELS = ("terminal", "events")
DEFAULT_LEVEL = logging.INFO
DEFAULT_RETENTION_HOURS = 48

_LEVELS: dict[str, int | None] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": None,
}
_ENTRY = re.compile(r"^([A-Za-z_]+)\s*[=:]\s*(.*)$")
_DURATION = re.compile(r"^(-?\d+)\s*([hd]?)$", re.IGNORECASE)


@dataclass(frozen=True)
class LoggingSettings:
    terminal_level: int | None = DEFAULT_LEVEL
    events_level: int | None = DEFAULT_LEVEL
    retention_hours: int = DEFAULT_RETENTION_HOURS

    @property
    def events_enabled(self) -> bool:
        return self.events_level is not None

    def prune_events(self, directory: Path, logger: logging.Logger | None = None) -> int:
        """Delete event files older than ``retention_hours``; 0 keeps all."""

        deleted, _errors = cleanup_old_logs([directory], self.retention_hours, logger)
        return deleted


def _entries(text: str) -> Iterator[tuple[str, str]]:
    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        match = _ENTRY.match(line)
        if match:
            yield match.group(1).lower(), match.group(2).strip()


def _level(value: str) -> int | None:
    return _LEVELS.get(value.lower(), DEFAULT_LEVEL)


def _retention_hours(value: str) -> int | None:
    match = _DURATION.match(value)
    if match is None:
        return None
    amount = int(match.group(1))
    if match.group(2).lower() == "d":
        amount *= 24
    return max(0, amount)


def parse_logging_settings(path: Path) -> LoggingSettings:
    """Read ``path``; missing files, unknown keys and bad values fall back to defaults."""

    settings = LoggingSettings()
    if not path.exists():
        return settings

    changes: dict[str, Any] = {}
    for key, value in _entries(path.read_text(encoding="utf-8")):
        if key in CHANNELS:
            changes[f"{key}_level"] = _level(value)
        elif key == "retention_hours":
            hours = _retention_hours(value)
            if hours is not None:
                changes["retention_hours"] = hours
    return replace(settings, **changes)


__all__ = ["LoggingSettings", "parse_logging_settings"]
