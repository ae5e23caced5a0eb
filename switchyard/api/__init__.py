"""HTTP API layer (FastAPI)."""

from switchyard.api.main import create_app

__all__ = ["create_app"]
