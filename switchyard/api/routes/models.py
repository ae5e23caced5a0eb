"""
Model Registry Routes
======================

Endpoints:
- GET    /models                       — Registered entries with live state
- POST   /models                       — Register (or overwrite) an entry
- DELETE /models/{model_id}            — Unregister an entry
- POST   /models/{model_id}/enable     — Enable an entry
- POST   /models/{model_id}/disable    — Disable an entry
- PUT    /models/{model_id}/pin        — Record a version pin
- PUT    /models/{model_id}/update-policy — Record an update policy
- PUT    /preferences                  — Merge global selection preferences
"""

from fastapi import APIRouter, Depends, status

from switchyard.core.exceptions import ModelNotFoundError
from switchyard.manager import RegistryManager

from ..deps import get_manager
from ..schemas import ModelEntryRequest, PinVersionRequest, PreferencesRequest, UpdatePolicyRequest

router = APIRouter(tags=["models"])

def _require(manager: RegistryManager, model_id: str) -> None:
    if manager.registry.get_entry(model_id) is None:
        raise ModelNotFoundError(model_id)

@router.get("/models")
async def list_models(manager: RegistryManager = Depends(get_manager)):
    return {"models": manager.registry.describe()}

@router.post("/models", status_code=status.HTTP_201_CREATED)
async def register_model(body: ModelEntryRequest, manager: RegistryManager = Depends(get_manager)):
    entry = body.to_entry()
    manager.register_model(entry)
    return {"id": entry.id, "registered": True}

@router.delete("/models/{model_id}")
async def unregister_model(model_id: str, manager: RegistryManager = Depends(get_manager)):
    _require(manager, model_id)
    manager.unregister_model(model_id)
    return {"id": model_id, "registered": False}

@router.post("/models/{model_id}/enable")
async def enable_model(model_id: str, manager: RegistryManager = Depends(get_manager)):
    _require(manager, model_id)
    manager.enable_model(model_id)
    return {"id": model_id, "enabled": True}

@router.post("/models/{model_id}/disable")
async def disable_model(model_id: str, manager: RegistryManager = Depends(get_manager)):
    _require(manager, model_id)
    manager.disable_model(model_id)
    return {"id": model_id, "enabled": False}

@router.put("/models/{model_id}/pin")
async def pin_version(
    model_id: str,
    body: PinVersionRequest,
    manager: RegistryManager = Depends(get_manager),
):
    _require(manager, model_id)
    manager.pin_version(model_id, body.version)
    return {"id": model_id, "version_pin": body.version}

@router.put("/models/{model_id}/update-policy")
async def set_update_policy(
    model_id: str,
    body: UpdatePolicyRequest,
    manager: RegistryManager = Depends(get_manager),
):
    _require(manager, model_id)
    manager.set_update_policy(model_id, body.policy)
    return {"id": model_id, "update_policy": body.policy.value}

@router.put("/preferences")
async def set_preferences(body: PreferencesRequest, manager: RegistryManager = Depends(get_manager)):
    prefs = manager.set_preferences(**body.model_dump(exclude_none=True))
    return {
        "default_provider": prefs.default_provider,
        "fallback_provider": prefs.fallback_provider,
        "cost_optimization": prefs.cost_optimization,
        "speed_optimization": prefs.speed_optimization,
        "require_privacy": prefs.require_privacy,
        "preferred_models": prefs.preferred_models,
    }
