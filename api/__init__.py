"""PR review bot - API module for the webhook service.

This module provides the FastAPI application and all related components
for receiving GitHub App webhooks.
"""

from .config import Settings, get_settings
from .dependencies import get_dispatcher, get_processor
from .main import app, create_app

__all__ = [
    "app",
    "create_app",
    "get_dispatcher",
    "get_processor",
    "get_settings",
    "Settings",
]
