"""
Shared API Dependencies
========================

The RegistryManager lives on ``app.state``; routes receive it through
``Depends(get_manager)``.

Usage:
    from ..deps import get_manager
"""

from fastapi import HTTPException, Request

from switchyard.manager import RegistryManager

__all__ = ["get_manager"]

def get_manager(request: Request) -> RegistryManager:
    manager = getattr(request.app.state, "manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Registry manager not initialized")
    return manager
