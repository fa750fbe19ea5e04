"""Structured activity events: recent buffer, JSON log lines and broadcast."""

from __future__ import annotations

import json
import logging
import time
from collections import deque
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel

from .observers import ObserverHub


# JSON lines for the event files; handlers are attached in app setup.
event_logger = logging.getLogger("chatspeak.events")


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    return value


class EventLog:
    """Records ``{type, ...context, timestamp}`` events for operators."""

    def __init__(
        self,
        hub: ObserverHub,
        *,
        limit: int = 200,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._hub = hub
        self._clock = clock
        self._recent: deque[dict[str, Any]] = deque(maxlen=limit)

    def record(self, event_type: str, **context: Any) -> dict[str, Any]:
        event = {"type": event_type, **_jsonable(context)}
        event["timestamp"] = int(self._clock() * 1000)
        self._recent.append(event)
        event_logger.info(json.dumps(event, ensure_ascii=False, default=str))
        self._hub.publish("log", event)
        return event

    def snapshot(self) -> list[dict[str, Any]]:
        return list(self._recent)


__all__ = ["EventLog", "event_logger"]
