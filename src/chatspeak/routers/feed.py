"""Routes for connecting to and disconnecting from the live chat feed."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from ..services.feed import FeedService, FeedStatus

router = APIRouter(prefix="/api/feed", tags=["feed"])


def get_feed_service(request: Request) -> FeedService:
    service = getattr(request.app.state, "feed_service", None)
    if service is None:  # pragma: no cover - defensive
        raise RuntimeError("Feed service is not configured")
    return service


@router.get("/status", response_model=FeedStatus)
async def read_feed_status(service: FeedService = Depends(get_feed_service)) -> FeedStatus:
    return service.status()


@router.post("/connect")
async def connect_feed(service: FeedService = Depends(get_feed_service)) -> dict[str, Any]:
    """Open the upstream connection; failures are reported, never retried."""

    result = await service.connect()
    return {**result, "feed": service.status().model_dump()}


@router.post("/disconnect")
async def disconnect_feed(service: FeedService = Depends(get_feed_service)) -> dict[str, Any]:
    await service.disconnect()
    return {"ok": True, "feed": service.status().model_dump()}


__all__ = ["router"]
