"""
Health Routes
==============

Endpoints:
- GET /health         — Aggregate per-state counts over enabled entries
- GET /health/models  — Health snapshot per registered entry
"""

from fastapi import APIRouter, Depends

from switchyard.manager import RegistryManager

from ..deps import get_manager

router = APIRouter(tags=["health"])

@router.get("/health")
async def overall_health(manager: RegistryManager = Depends(get_manager)):
    counts = manager.get_overall_health()
    status = "healthy"
    if counts["total"] and counts["healthy"] == 0:
        status = "unhealthy"
    elif counts["degraded"] or counts["down"]:
        status = "degraded"
    return {"status": status, **counts}

@router.get("/health/models")
async def model_health(manager: RegistryManager = Depends(get_manager)):
    registry = manager.registry
    return {
        "models": {
            mid: registry.health(mid).to_dict()
            for mid in registry.entry_ids()
            if registry.health(mid) is not None
        }
    }
