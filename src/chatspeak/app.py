"""Application factory for the chat-to-speech service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Mapping

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import PROJECT_ROOT, Settings, get_settings
from .logging_handlers import DateStampedFileHandler
from .logging_settings import LoggingSettings, parse_logging_settings
from .routers.control import router as control_router
from .routers.feed import router as feed_router
from .routers.observers import router as observers_router
from .services.event_log import event_logger
from .services.feed import FeedService
from .services.file_watcher import FileWatcher
from .services.pipeline import build_pipeline
from .services.tts.engines import SpeechEngine

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _resolve_under(base: Path, p: Path) -> Path:
    # Absolute paths are used as-is (tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    return (base / p).resolve()


def _configure_logging(settings: Settings) -> LoggingSettings:
    """Configure the console and structured event loggers.

    ``LOG_LEVEL`` in the environment overrides the ``terminal`` level from
    the logging settings file.
    """
    load_dotenv()

    logging_settings = parse_logging_settings(
        _resolve_under(PROJECT_ROOT, settings.logging_settings_path)
    )

    env_level = os.getenv("LOG_LEVEL")
    if env_level:
        terminal_level: int | None = getattr(logging, env_level.upper(), logging.INFO)
    else:
        terminal_level = logging_settings.terminal_level

    handlers: list[logging.Handler] = []
    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        handlers.append(file_handler)

    if terminal_level is not None:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        handlers.append(console_handler)
    else:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=terminal_level or logging.WARNING,
        handlers=handlers,
        force=True,
    )
    logging.getLogger("chatspeak").setLevel(terminal_level or logging.WARNING)
    logging.getLogger("uvicorn").setLevel(terminal_level or logging.WARNING)

    # Event lines go to their own files, not the console.
    for handler in list(event_logger.handlers):
        event_logger.removeHandler(handler)
        handler.close()
    event_logger.propagate = False

    if not logging_settings.events_enabled:
        event_logger.disabled = True
        return logging_settings

    event_dir = _resolve_under(PROJECT_ROOT, settings.event_log_dir)
    logging_settings.prune_events(event_dir, logging.getLogger(__name__))
    events_handler = DateStampedFileHandler(event_dir)
    events_handler.setFormatter(logging.Formatter("%(message)s"))
    event_logger.disabled = False
    event_logger.setLevel(logging_settings.events_level)
    event_logger.addHandler(events_handler)
    return logging_settings


def create_app(
    *,
    engines: Mapping[str, SpeechEngine] | None = None,
    feed_connector: Callable[..., Any] | None = None,
) -> FastAPI:
    settings = get_settings()
    _configure_logging(settings)

    data_dir = _resolve_under(PROJECT_ROOT, settings.data_dir)
    # A corrupt settings or ban file stops startup here.
    pipeline = build_pipeline(
        data_dir,
        engines=engines,
        queue_snapshot_limit=settings.queue_snapshot_limit,
        log_snapshot_limit=settings.log_snapshot_limit,
    )
    if feed_connector is not None:
        feed_service = FeedService(pipeline, settings.feed_url, connector=feed_connector)
    else:
        feed_service = FeedService(pipeline, settings.feed_url)
    watcher = FileWatcher(settings.reload_interval_seconds)
    pipeline.watch_files(watcher)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        watcher.start()
        pipeline.worker.kick()
        logging.info("Chat speech pipeline ready, data in %s", data_dir)
        try:
            yield
        finally:
            await watcher.stop()
            try:
                await asyncio.wait_for(feed_service.disconnect(reason="shutdown"), timeout=5.0)
            except asyncio.TimeoutError:
                logging.warning("Feed disconnect timed out after 5s")
            await pipeline.worker.stop()

    app = FastAPI(
        title="Chatspeak",
        version="0.1.0",
        description="Moderates live chat and reads accepted messages aloud.",
        lifespan=lifespan,
    )

    app.state.pipeline = pipeline
    app.state.feed_service = feed_service
    app.state.file_watcher = watcher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(control_router)
    app.include_router(feed_router)
    app.include_router(observers_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, Any]:
        return {
            "status": "ok",
            "tts_enabled": pipeline.settings.tts_enabled,
            "queue_size": len(pipeline.queue),
            "feed": feed_service.status().status,
        }

    return app


__all__ = ["create_app"]
