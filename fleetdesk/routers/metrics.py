"""
Metrics Router - Prometheus Endpoint

Exposes /metrics endpoint for Prometheus scraping
"""
from fastapi import APIRouter, Response
from ..metrics import get_metrics_text, get_metrics_content_type

router = APIRouter(tags=["Observability"])


@router.get("/metrics")
async def prometheus_metrics():
    """
    Sweep, transition, realtime and cache counters in Prometheus text format

    Should sit behind an IP allowlist in production.
    """
    return Response(
        content=get_metrics_text(),
        media_type=get_metrics_content_type()
    )
