"""Settings store persisting the live-tunable pipeline configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from ..schemas.settings import PipelineSettings, PipelineSettingsUpdate, merge_settings
from ..utils.files import StorageError, atomic_write_json, read_json

logger = logging.getLogger(__name__)

SettingsListener = Callable[[PipelineSettings, PipelineSettings], None]


class SettingsStore:
    """Holds the current immutable settings snapshot and its JSON mirror.

    Every change replaces the snapshot as a whole and then notifies the
    registered listeners with ``(previous, current)``.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._current = PipelineSettings()
        self._listeners: list[SettingsListener] = []

    def add_listener(self, listener: SettingsListener) -> None:
        self._listeners.append(listener)

    def _read(self) -> PipelineSettings:
        return PipelineSettings.model_validate(read_json(self.path))

    def load(self) -> PipelineSettings:
        """Initial load; a missing file is created with defaults.

        Raises ``StorageError`` when the file exists but is unusable, since
        the pipeline cannot run without known limits.
        """

        if not self.path.exists():
            logger.info("No settings at %s, writing defaults", self.path)
            self._current = PipelineSettings()
            self._save(self._current)
            return self._current

        try:
            self._current = self._read()
        except (OSError, ValueError) as exc:
            raise StorageError(f"Cannot read settings from {self.path}: {exc}") from exc
        logger.info("Loaded settings from %s", self.path)
        return self._current

    def get(self) -> PipelineSettings:
        return self._current

    def update(
        self, update: PipelineSettingsUpdate | Mapping[str, Any]
    ) -> PipelineSettings:
        """Merge a partial update, persist it and swap it in.

        Raises ``pydantic.ValidationError`` for values of the wrong type;
        out-of-range values are clamped instead.
        """

        if not isinstance(update, PipelineSettingsUpdate):
            update = PipelineSettingsUpdate.model_validate(dict(update))
        merged = merge_settings(self._current, update)
        self._save(merged)
        self._swap(merged)
        return merged

    def reset(self) -> PipelineSettings:
        defaults = PipelineSettings()
        self._save(defaults)
        self._swap(defaults)
        return defaults

    def reload(self) -> bool:
        """Absorb an external edit of the settings file.

        Returns True when the snapshot changed. Unreadable files keep the
        current snapshot.
        """

        try:
            loaded = self._read()
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Settings reload failed, keeping current settings: %s", exc)
            return False
        if loaded == self._current:
            return False
        self._swap(loaded)
        logger.info("Reloaded settings from %s", self.path)
        return True

    def _save(self, settings: PipelineSettings) -> None:
        atomic_write_json(self.path, settings.model_dump(mode="json"))
        logger.debug("Saved settings to %s", self.path)

    def _swap(self, settings: PipelineSettings) -> None:
        previous = self._current
        self._current = settings
        for listener in self._listeners:
            listener(previous, settings)


__all__ = ["SettingsListener", "SettingsStore"]
