"""Administrative API endpoints."""
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..fanout.hub import EventFanoutHub
from .deps import get_hub

router = APIRouter()


@router.get("/health", summary="Readiness probe")
async def admin_health() -> dict[str, str]:
    """Administrative health endpoint."""
    return {"status": "ok"}


@router.get("/listeners", summary="Live SSE listener count")
async def admin_listeners(hub: EventFanoutHub = Depends(get_hub)) -> dict[str, int]:
    return {"listeners": hub.listener_count}


@router.get("/metrics", summary="Prometheus metrics feed")
async def admin_metrics() -> Response:
    """Expose Prometheus-formatted metrics for scraping."""

    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
