"""FastAPI routers package."""

from .application import router as application_router
from .health import router as health_router
from .metrics import router as metrics_router
from .subscription import router as subscription_router
from .tour import router as tour_router

__all__ = [
    "application_router",
    "health_router",
    "metrics_router",
    "subscription_router",
    "tour_router",
]
