"""
Speech synthesis for queued chat messages.

- engines: adapters for the OS voices (pyttsx3) and the Piper subprocess
- speech_worker: the single consumer that drains the dispatch queue

Flow:

    DispatchQueue ──▶ SpeechWorker ──▶ configured engine
                                         │ failure
                                         ▼
                                   system engine (fallback, same message)
"""

from .engines import (
    PiperSpeechEngine,
    SpeechEngine,
    SpeechEngineError,
    SystemSpeechEngine,
)
from .speech_worker import SpeechWorker, WorkerState

__all__ = [
    "PiperSpeechEngine",
    "SpeechEngine",
    "SpeechEngineError",
    "SpeechWorker",
    "SystemSpeechEngine",
    "WorkerState",
]
