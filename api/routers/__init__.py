"""API routers for the PR review bot.

This module exports all API routers for inclusion in the main FastAPI app.
"""

from .health import router as health_router
from .webhook import router as webhook_router

__all__ = [
    "health_router",
    "webhook_router",
]
