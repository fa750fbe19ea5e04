"""Speech engine adapters.

Two engines are available:

- ``SystemSpeechEngine``: the operating system voices via pyttsx3. It is
  the baseline and is assumed to always be present.
- ``PiperSpeechEngine``: runs Piper in a subprocess to render a WAV file
  and then plays that file with the platform's command-line player.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import sys
import tempfile
import threading
from pathlib import Path
from typing import Callable, Protocol, Sequence

import pyttsx3

from ...schemas.settings import PiperSettings

logger = logging.getLogger(__name__)

SUBPROCESS_TIMEOUT_SECONDS = 60.0


class SpeechEngineError(RuntimeError):
    """Raised when an engine could not render or play an utterance."""


class SpeechEngine(Protocol):
    name: str

    async def speak(self, text: str, *, voice: str | None = None, rate: float = 1.0) -> None:
        ...


class SystemSpeechEngine:
    """OS text-to-speech through pyttsx3, run off the event loop."""

    name = "system"

    def __init__(self) -> None:
        # pyttsx3 drivers are not safe to drive from two threads at once.
        self._lock = threading.Lock()

    async def speak(self, text: str, *, voice: str | None = None, rate: float = 1.0) -> None:
        await asyncio.to_thread(self._speak_blocking, text, voice, rate)

    def _speak_blocking(self, text: str, voice: str | None, rate: float) -> None:
        with self._lock:
            try:
                engine = pyttsx3.init()
                base_rate = engine.getProperty("rate") or 200
                engine.setProperty("rate", int(base_rate * rate))
                if voice:
                    voice_id = self._resolve_voice(engine, voice)
                    if voice_id:
                        engine.setProperty("voice", voice_id)
                engine.say(text)
                engine.runAndWait()
            except Exception as exc:
                raise SpeechEngineError(f"system speech failed: {exc}") from exc

    @staticmethod
    def _resolve_voice(engine, voice: str) -> str | None:
        wanted = voice.lower()
        for candidate in engine.getProperty("voices") or []:
            if candidate.id == voice or wanted in (candidate.name or "").lower():
                return candidate.id
        logger.warning("Voice %r not found, using default voice", voice)
        return None

    def list_voices(self) -> list[dict[str, str]]:
        with self._lock:
            try:
                engine = pyttsx3.init()
                voices = engine.getProperty("voices") or []
            except Exception as exc:
                logger.warning("Could not list system voices: %s", exc)
                return []
        return [{"id": v.id, "name": v.name or v.id} for v in voices]


async def run_command(
    command: Sequence[str],
    *,
    stdin: bytes | None = None,
    timeout: float = SUBPROCESS_TIMEOUT_SECONDS,
) -> None:
    """Run ``command`` to completion, raising ``SpeechEngineError`` on failure."""

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise SpeechEngineError(f"cannot start {command[0]!r}: {exc}") from exc

    try:
        _, stderr = await asyncio.wait_for(process.communicate(stdin), timeout=timeout)
    except asyncio.TimeoutError as exc:
        process.kill()
        await process.wait()
        raise SpeechEngineError(f"{command[0]!r} timed out after {timeout:.0f}s") from exc
    except asyncio.CancelledError:
        process.kill()
        await process.wait()
        raise

    if process.returncode != 0:
        detail = (stderr or b"").decode("utf-8", errors="replace").strip()[-300:]
        raise SpeechEngineError(
            f"{command[0]!r} exited with {process.returncode}: {detail}"
        )


def player_command(path: Path, platform: str | None = None) -> list[str]:
    """Command line that plays a WAV file on this platform."""

    platform = platform or sys.platform
    if platform == "darwin":
        return ["afplay", str(path)]
    if platform.startswith("win"):
        escaped = str(path).replace("'", "''")
        return [
            "powershell",
            "-NoProfile",
            "-Command",
            f"(New-Object Media.SoundPlayer '{escaped}').PlaySync()",
        ]
    return ["aplay", "-q", str(path)]


class PiperSpeechEngine:
    """Renders speech with Piper into a temporary WAV and plays it.

    The WAV lives in a temporary directory that is removed when the
    utterance ends, whether rendering or playback failed or not.
    """

    name = "piper"

    def __init__(
        self,
        settings: Callable[[], PiperSettings],
        *,
        player: Callable[[Path], list[str]] = player_command,
        timeout: float = SUBPROCESS_TIMEOUT_SECONDS,
    ) -> None:
        self._settings = settings
        self._player = player
        self._timeout = timeout

    def synth_command(self, config: PiperSettings, output: Path, rate: float = 1.0) -> list[str]:
        length_scale = config.length_scale / max(rate, 0.1)
        return [
            *shlex.split(config.python_cmd),
            "-m",
            "piper",
            "--model",
            config.model_path,
            "--output_file",
            str(output),
            "--length_scale",
            f"{length_scale:.3f}",
            "--volume",
            f"{config.volume:.3f}",
        ]

    async def speak(self, text: str, *, voice: str | None = None, rate: float = 1.0) -> None:
        config = self._settings()
        if not config.model_path:
            raise SpeechEngineError("piper model path is not configured")

        with tempfile.TemporaryDirectory(prefix="chatspeak-") as workdir:
            output = Path(workdir) / "utterance.wav"
            await run_command(
                self.synth_command(config, output, rate),
                stdin=text.encode("utf-8"),
                timeout=self._timeout,
            )
            if not output.exists():
                raise SpeechEngineError("piper produced no audio file")
            await run_command(self._player(output), timeout=self._timeout)


__all__ = [
    "PiperSpeechEngine",
    "SpeechEngine",
    "SpeechEngineError",
    "SystemSpeechEngine",
    "player_command",
    "run_command",
]
