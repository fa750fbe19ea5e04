"""Operator control surface: speech toggle, queue, bans, lists, settings."""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..moderation.word_lists import MIN_ADDED_WORD_LENGTH
from ..schemas.commands import (
    AddWordPayload,
    BanPayload,
    ListsPayload,
    ManualMessagePayload,
    ManualMessageResponse,
    OkResponse,
    SettingsResponse,
    SkipPayload,
    SpeechTogglePayload,
    UnbanPayload,
)
from ..schemas.settings import PipelineSettings, PipelineSettingsUpdate
from ..services.pipeline import Pipeline, clean_sender_id
from ..utils.files import StorageError

router = APIRouter(prefix="/api", tags=["control"])


def get_pipeline(request: Request) -> Pipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:  # pragma: no cover - defensive
        raise RuntimeError("Pipeline is not configured")
    return pipeline


def _storage_failure(exc: StorageError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc),
    )


@router.get("/status")
async def read_status(pipeline: Pipeline = Depends(get_pipeline)) -> dict[str, Any]:
    return pipeline.status_snapshot()


@router.post("/tts")
async def toggle_speech(
    payload: SpeechTogglePayload,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    try:
        settings = pipeline.set_speech_enabled(payload.enabled)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return {"ok": True, "tts_enabled": settings.tts_enabled}


@router.get("/queue")
async def read_queue(pipeline: Pipeline = Depends(get_pipeline)) -> dict[str, Any]:
    return pipeline.queue_snapshot()


@router.post("/queue/clear")
async def clear_queue(pipeline: Pipeline = Depends(get_pipeline)) -> dict[str, Any]:
    removed = pipeline.clear()
    return {"ok": True, "removed": removed}


@router.post("/queue/skip", response_model=OkResponse)
async def skip_message(
    payload: SkipPayload,
    pipeline: Pipeline = Depends(get_pipeline),
) -> OkResponse:
    if not pipeline.skip(payload.id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Message {payload.id} is not queued",
        )
    return OkResponse()


@router.post("/queue/test", response_model=ManualMessageResponse)
async def enqueue_test_message(
    payload: ManualMessagePayload,
    pipeline: Pipeline = Depends(get_pipeline),
) -> ManualMessageResponse:
    """Queue an operator-authored message, optionally repeated ``count`` times."""

    result = pipeline.enqueue_test(
        payload.sender_id,
        payload.display_name,
        payload.text,
        payload.count,
    )
    return ManualMessageResponse(
        ok=result.ok,
        reason=result.reason.value if result.reason else None,
        added=result.added,
        dropped=result.dropped,
        messages=result.messages,
    )


@router.get("/bans")
async def list_bans(pipeline: Pipeline = Depends(get_pipeline)) -> dict[str, Any]:
    return pipeline.ledger.snapshot()


@router.post("/ban")
async def ban_sender(
    payload: BanPayload,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    sender_id = clean_sender_id(payload.sender_id)
    if not sender_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="sender_id is required",
        )
    try:
        entry = pipeline.ledger.ban(sender_id, payload.reason or "manual", payload.minutes)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return {"ok": True, "ban": entry.model_dump()}


@router.post("/unban")
async def unban_sender(
    payload: UnbanPayload,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    sender_id = clean_sender_id(payload.sender_id)
    if not sender_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="sender_id is required",
        )
    try:
        removed = pipeline.ledger.unban(sender_id)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return {"ok": True, "removed": removed}


@router.get("/lists")
async def read_lists(pipeline: Pipeline = Depends(get_pipeline)) -> dict[str, list[str]]:
    """Return the raw list files as edited by operators."""

    return pipeline.word_lists.read_raw()


@router.post("/lists", response_model=OkResponse)
async def replace_lists(
    payload: ListsPayload,
    pipeline: Pipeline = Depends(get_pipeline),
) -> OkResponse:
    try:
        pipeline.replace_lists(exact=payload.exact, substring=payload.substring)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return OkResponse()


@router.post("/badwords/add")
async def add_bad_word(
    payload: AddWordPayload,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    try:
        added = pipeline.add_word(payload.word, payload.mode)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    if added is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Word must have at least {MIN_ADDED_WORD_LENGTH} letters or digits",
        )
    return {"ok": True, "word": added, "mode": payload.mode}


@router.get("/settings", response_model=PipelineSettings)
async def read_settings(pipeline: Pipeline = Depends(get_pipeline)) -> PipelineSettings:
    return pipeline.settings


@router.post("/settings", response_model=SettingsResponse)
async def update_settings(
    payload: PipelineSettingsUpdate,
    pipeline: Pipeline = Depends(get_pipeline),
) -> SettingsResponse:
    """Apply a partial update; out-of-range numbers are clamped, unknown keys ignored."""

    try:
        settings = pipeline.update_settings(payload)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return SettingsResponse(settings=settings)


@router.post("/settings/reset", response_model=SettingsResponse)
async def reset_settings(pipeline: Pipeline = Depends(get_pipeline)) -> SettingsResponse:
    try:
        settings = pipeline.reset_settings()
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return SettingsResponse(settings=settings)


@router.get("/history")
async def read_history(pipeline: Pipeline = Depends(get_pipeline)) -> list[dict[str, Any]]:
    return pipeline.history.snapshot()


@router.get("/tts/voices")
async def list_voices(pipeline: Pipeline = Depends(get_pipeline)) -> dict[str, Any]:
    engine = pipeline.worker.engines.get("system")
    lister = getattr(engine, "list_voices", None)
    if lister is None:
        return {"voices": []}
    voices = await asyncio.to_thread(lister)
    return {"voices": voices}


__all__ = ["router", "get_pipeline"]
