from .analytics import router as analytics_router
from .counter import router as counter_router

__all__ = [
    "analytics_router",
    "counter_router",
]
