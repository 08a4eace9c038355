"""API route modules."""

from .health_routes import router as health_router
from .inbox_routes import router as inbox_router

__all__ = [
    "health_router",
    "inbox_router",
]
