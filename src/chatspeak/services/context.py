"""Shared collaborators handed to every pipeline component."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from .event_log import EventLog
from .observers import ObserverHub
from .settings_store import SettingsStore


@dataclass
class PipelineContext:
    """Everything a component may touch besides its own state.

    ``clock`` is wall time in seconds (ban expiry, timestamps shown to
    operators); ``monotonic`` drives cooldowns.
    """

    settings: SettingsStore
    hub: ObserverHub
    events: EventLog
    clock: Callable[[], float] = field(default=time.time)
    monotonic: Callable[[], float] = field(default=time.monotonic)

    def now_ms(self) -> int:
        return int(self.clock() * 1000)


__all__ = ["PipelineContext"]
