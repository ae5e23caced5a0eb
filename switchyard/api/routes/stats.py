"""
Stats and Metrics Routes
=========================

Endpoints:
- GET /stats          — Router, worker pool, cache and health summary
- GET /stats/cache    — Cache statistics
- GET /stats/costs    — Summed cost per entry, optional time range
- GET /metrics        — Prometheus exposition
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from prometheus_client import CONTENT_TYPE_LATEST

from switchyard.infra.telemetry import get_metrics
from switchyard.manager import RegistryManager

from ..deps import get_manager

router = APIRouter(tags=["stats"])

@router.get("/stats")
async def stats(manager: RegistryManager = Depends(get_manager)):
    return manager.get_stats()

@router.get("/stats/cache")
async def cache_stats(manager: RegistryManager = Depends(get_manager)):
    return manager.get_cache_stats()

@router.get("/stats/costs")
async def cost_stats(
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    manager: RegistryManager = Depends(get_manager),
):
    totals = manager.get_total_costs(start, end)
    return {"costs": totals, "total": sum(totals.values())}

@router.get("/metrics", include_in_schema=False)
async def prometheus_metrics():
    return Response(content=get_metrics().export_prometheus(), media_type=CONTENT_TYPE_LATEST)
