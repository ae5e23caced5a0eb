"""API route modules initialization."""
from .health import router as health_router
from .models import router as models_router
from .stats import router as stats_router
from .tasks import router as tasks_router

__all__ = ["health_router", "models_router", "stats_router", "tasks_router"]
