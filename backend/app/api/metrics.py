"""
Prometheus metrics endpoint.

Exposes GET /metrics in Prometheus text exposition format. The cache
availability gauge is refreshed on every scrape.
"""

from fastapi import APIRouter, Request
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from app.middleware.metrics import cache_available

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def prometheus_metrics(request: Request):
    cache = getattr(request.app.state, "cache", None)
    cache_available.set(1 if cache is not None and cache.available else 0)
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
