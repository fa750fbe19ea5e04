"""WebSocket endpoint that streams pipeline state to dashboards."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket

logger = logging.getLogger(__name__)

router = APIRouter(tags=["observers"])


@router.websocket("/ws")
async def observe(websocket: WebSocket) -> None:
    app_state = websocket.app.state
    pipeline = getattr(app_state, "pipeline", None)
    if pipeline is None:
        logger.error("Pipeline not initialized")
        await websocket.close(code=1011, reason="Server not ready")
        return

    initial = pipeline.initial_snapshots()
    feed_service = getattr(app_state, "feed_service", None)
    if feed_service is not None:
        # Sent right after the settings snapshot.
        initial.insert(5, ("feed_status", feed_service.status().model_dump()))

    await pipeline.context.hub.serve(websocket, initial)


__all__ = ["router"]
