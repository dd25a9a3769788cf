"""API routers."""

from nexus.api.auth import router as auth_router
from nexus.api.debug import router as debug_router
from nexus.api.health import router as health_router
from nexus.api.messages import router as messages_router
from nexus.api.sessions import router as sessions_router

__all__ = [
    "auth_router",
    "debug_router",
    "health_router",
    "messages_router",
    "sessions_router",
]
