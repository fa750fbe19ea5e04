from __future__ import annotations

from pathlib import Path

import pytest

from chatspeak.schemas.moderation import ChatMessage
from chatspeak.schemas.settings import PiperSettings
from chatspeak.services.dispatch_queue import DispatchQueue
from chatspeak.services.tts import engines as engines_module
from chatspeak.services.tts.engines import (
    PiperSpeechEngine,
    SpeechEngineError,
    player_command,
)
from chatspeak.services.tts.speech_worker import SpeechWorker, WorkerState

pytestmark = pytest.mark.anyio


@pytest.fixture
def anyio_backend() -> str:
    """Limit AnyIO backend to asyncio for these tests."""
    return "asyncio"


class FakeEngine:
    def __init__(self, name: str, calls: list[tuple[str, str]], *, fail: bool = False) -> None:
        self.name = name
        self.calls = calls
        self.fail = fail
        self.on_speak = None

    async def speak(self, text: str, *, voice: str | None = None, rate: float = 1.0) -> None:
        self.calls.append((self.name, text))
        if self.on_speak is not None:
            self.on_speak(text)
        if self.fail:
            raise SpeechEngineError(f"{self.name} broke")


def _message(message_id: int, text: str) -> ChatMessage:
    return ChatMessage(
        id=message_id,
        sender_id="viewer",
        display_name="Viewer",
        text=text,
        submitted_at_ms=0,
    )


def _fill(queue: DispatchQueue, *texts: str) -> None:
    for index, text in enumerate(texts, start=1):
        assert queue.enqueue(_message(index, text))


def _types(context) -> list[str]:
    return [event["type"] for event in context.events.snapshot()]


async def test_speaks_queue_in_fifo_order(context) -> None:
    calls: list[tuple[str, str]] = []
    queue = DispatchQueue(context)
    worker = SpeechWorker(context, queue, {"system": FakeEngine("system", calls)}, pause_seconds=0)
    _fill(queue, "uno", "dos", "tres")

    assert worker.kick() is True
    assert worker.state is WorkerState.RUNNING
    assert worker.kick() is False
    await worker.wait_idle()

    assert calls == [("system", "uno"), ("system", "dos"), ("system", "tres")]
    assert worker.state is WorkerState.IDLE
    assert worker.speaking is False
    assert len(queue) == 0


async def test_fallback_runs_for_same_message_before_next(make_context) -> None:
    context = make_context(tts_engine="piper")
    calls: list[tuple[str, str]] = []
    engines = {
        "system": FakeEngine("system", calls),
        "piper": FakeEngine("piper", calls, fail=True),
    }
    queue = DispatchQueue(context)
    worker = SpeechWorker(context, queue, engines, pause_seconds=0)
    _fill(queue, "A", "B")

    worker.kick()
    await worker.wait_idle()

    assert calls == [("piper", "A"), ("system", "A"), ("piper", "B"), ("system", "B")]
    assert _types(context).count("tts_fallback") == 2
    fallback = next(e for e in context.events.snapshot() if e["type"] == "tts_fallback")
    assert fallback["engine"] == "system"
    assert fallback["failed_engine"] == "piper"


async def test_failed_fallback_drops_item_and_continues(make_context) -> None:
    context = make_context(tts_engine="piper")
    calls: list[tuple[str, str]] = []
    engines = {
        "system": FakeEngine("system", calls, fail=True),
        "piper": FakeEngine("piper", calls, fail=True),
    }
    queue = DispatchQueue(context)
    worker = SpeechWorker(context, queue, engines, pause_seconds=0)
    _fill(queue, "A", "B")

    worker.kick()
    await worker.wait_idle()

    assert [text for _, text in calls] == ["A", "A", "B", "B"]
    assert len(queue) == 0
    assert _types(context).count("tts_error") == 4


async def test_baseline_failure_is_not_retried(context) -> None:
    calls: list[tuple[str, str]] = []
    queue = DispatchQueue(context)
    worker = SpeechWorker(
        context, queue, {"system": FakeEngine("system", calls, fail=True)}, pause_seconds=0
    )
    _fill(queue, "A")

    worker.kick()
    await worker.wait_idle()

    assert calls == [("system", "A")]
    assert "tts_fallback" not in _types(context)


async def test_disabling_speech_finishes_current_item_then_stops(context) -> None:
    calls: list[tuple[str, str]] = []
    engine = FakeEngine("system", calls)
    engine.on_speak = lambda text: context.settings.update({"tts_enabled": False})
    queue = DispatchQueue(context)
    worker = SpeechWorker(context, queue, {"system": engine}, pause_seconds=0)
    _fill(queue, "uno", "dos", "tres")

    worker.kick()
    await worker.wait_idle()

    assert calls == [("system", "uno")]
    assert [m.text for m in queue] == ["dos", "tres"]
    assert worker.state is WorkerState.IDLE
    assert worker.kick() is False

    engine.on_speak = None
    context.settings.update({"tts_enabled": True})
    assert worker.kick() is True
    await worker.wait_idle()
    assert [text for _, text in calls] == ["uno", "dos", "tres"]


async def test_kick_restarts_after_queue_drained(context) -> None:
    calls: list[tuple[str, str]] = []
    queue = DispatchQueue(context)
    worker = SpeechWorker(context, queue, {"system": FakeEngine("system", calls)}, pause_seconds=0)

    assert worker.kick() is False
    _fill(queue, "uno")
    worker.kick()
    await worker.wait_idle()

    queue.enqueue(_message(9, "otra vez"))
    assert worker.kick() is True
    await worker.wait_idle()
    assert calls[-1] == ("system", "otra vez")


async def test_stop_cancels_loop(context) -> None:
    queue = DispatchQueue(context)
    worker = SpeechWorker(context, queue, {"system": FakeEngine("system", [])}, pause_seconds=5)
    _fill(queue, "uno", "dos")
    worker.kick()
    await worker.stop()
    assert worker.state is WorkerState.IDLE


def test_baseline_engine_is_required(context) -> None:
    with pytest.raises(ValueError):
        SpeechWorker(context, DispatchQueue(context), {"piper": FakeEngine("piper", [])})


def test_kick_without_event_loop_stays_idle(context) -> None:
    queue = DispatchQueue(context)
    worker = SpeechWorker(context, queue, {"system": FakeEngine("system", [])})
    _fill(queue, "uno")
    assert worker.kick() is False
    assert worker.state is WorkerState.IDLE


async def test_piper_removes_audio_file_after_playback(monkeypatch) -> None:
    commands: list[list[str]] = []
    outputs: list[Path] = []

    async def fake_run(command, *, stdin=None, timeout=60.0):
        commands.append(list(command))
        if "--output_file" in command:
            output = Path(command[command.index("--output_file") + 1])
            output.write_bytes(b"RIFF")
            outputs.append(output)
            assert stdin == "hola".encode("utf-8")

    monkeypatch.setattr(engines_module, "run_command", fake_run)
    engine = PiperSpeechEngine(
        lambda: PiperSettings(model_path="/voices/es.onnx", python_cmd="py -3"),
        player=lambda path: ["play", str(path)],
    )

    await engine.speak("hola", rate=2.0)

    assert commands[0][:4] == ["py", "-3", "-m", "piper"]
    assert commands[0][commands[0].index("--length_scale") + 1] == "0.500"
    assert commands[1] == ["play", str(outputs[0])]
    assert not outputs[0].exists()
    assert not outputs[0].parent.exists()


async def test_piper_removes_audio_file_when_playback_fails(monkeypatch) -> None:
    outputs: list[Path] = []

    async def fake_run(command, *, stdin=None, timeout=60.0):
        if "--output_file" in command:
            output = Path(command[command.index("--output_file") + 1])
            output.write_bytes(b"RIFF")
            outputs.append(output)
            return
        raise SpeechEngineError("player missing")

    monkeypatch.setattr(engines_module, "run_command", fake_run)
    engine = PiperSpeechEngine(lambda: PiperSettings(model_path="/voices/es.onnx"))

    with pytest.raises(SpeechEngineError):
        await engine.speak("hola")
    assert not outputs[0].exists()


async def test_piper_without_output_file_fails(monkeypatch) -> None:
    async def fake_run(command, *, stdin=None, timeout=60.0):
        return None

    monkeypatch.setattr(engines_module, "run_command", fake_run)
    engine = PiperSpeechEngine(lambda: PiperSettings(model_path="/voices/es.onnx"))
    with pytest.raises(SpeechEngineError, match="no audio"):
        await engine.speak("hola")


async def test_piper_requires_model_path() -> None:
    engine = PiperSpeechEngine(lambda: PiperSettings())
    with pytest.raises(SpeechEngineError, match="model path"):
        await engine.speak("hola")


def test_player_command_per_platform(tmp_path: Path) -> None:
    wav = tmp_path / "a.wav"
    assert player_command(wav, "darwin") == ["afplay", str(wav)]
    assert player_command(wav, "linux") == ["aplay", "-q", str(wav)]
    windows = player_command(wav, "win32")
    assert windows[0] == "powershell"
    assert "PlaySync" in windows[-1]
