import pathlib
import sys
from typing import Any, Callable

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from chatspeak.services.context import PipelineContext  # noqa: E402
from chatspeak.services.event_log import EventLog  # noqa: E402
from chatspeak.services.observers import ObserverHub  # noqa: E402
from chatspeak.services.settings_store import SettingsStore  # noqa: E402


class FakeClock:
    """Manually advanced clock usable for both wall and monotonic time."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingHub(ObserverHub):
    """Observer hub that also keeps every published message."""

    def __init__(self) -> None:
        super().__init__()
        self.published: list[tuple[str, Any]] = []

    def publish(self, message_type: str, data: Any) -> None:
        self.published.append((message_type, data))
        super().publish(message_type, data)

    def of_type(self, message_type: str) -> list[Any]:
        return [data for kind, data in self.published if kind == message_type]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hub() -> RecordingHub:
    return RecordingHub()


@pytest.fixture
def make_context(
    tmp_path: pathlib.Path, clock: FakeClock, hub: RecordingHub
) -> Callable[..., PipelineContext]:
    def factory(**overrides: Any) -> PipelineContext:
        store = SettingsStore(tmp_path / "settings.json")
        store.load()
        if overrides:
            store.update(overrides)
        return PipelineContext(
            settings=store,
            hub=hub,
            events=EventLog(hub, clock=clock),
            clock=clock,
            monotonic=clock,
        )

    return factory


@pytest.fixture
def context(make_context) -> PipelineContext:
    return make_context()
