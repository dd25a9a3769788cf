"""Core module with logging, middleware, and exception handling."""

from nexus.core.exceptions import (
    AuthenticationError,
    NexusException,
    NotFoundError,
    ProviderError,
    setup_exception_handlers,
)
from nexus.core.logging import get_logger, setup_logging
from nexus.core.middleware import RequestContextMiddleware

__all__ = [
    "get_logger",
    "setup_logging",
    "AuthenticationError",
    "NexusException",
    "NotFoundError",
    "ProviderError",
    "RequestContextMiddleware",
    "setup_exception_handlers",
]
