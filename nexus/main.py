"""
Nexus Backend Application.

FastAPI application with structured logging, error handling and the SSE
relay. Process-wide handles (database engine, provider registry) are
built in the lifespan and closed at shutdown.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nexus import __version__
from nexus.api import auth_router, debug_router, health_router, messages_router, sessions_router
from nexus.auth.tokens import cleanup_expired_tokens
from nexus.config import get_settings
from nexus.core import (
    RequestContextMiddleware,
    get_logger,
    setup_exception_handlers,
    setup_logging,
)
from nexus.db import Base, make_engine, make_session_factory, verify_database_connection
from nexus.providers import ProviderRegistry

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Startup
    setup_logging(
        level=settings.log_level,
        json_output=settings.is_production,
        log_file=settings.log_file or None,
    )
    logger.info(
        "Starting Nexus backend",
        data={
            "host": settings.host,
            "port": settings.port,
            "environment": settings.environment,
            "cors_origins": settings.cors_origins_list,
        },
    )

    engine = make_engine(settings.database_url, echo=settings.debug)
    _app.state.engine = engine
    _app.state.session_factory = make_session_factory(engine)

    if settings.database_auto_create:
        Base.metadata.create_all(bind=engine)

    if verify_database_connection(engine):
        logger.info("Database connection verified")
        db = _app.state.session_factory()
        try:
            removed = cleanup_expired_tokens(db)
            if removed:
                logger.info("Removed expired tokens", data={"count": removed})
        finally:
            db.close()
    else:
        logger.warning("Database connection failed - requests touching the database will error")

    # Tests may install their own registry before startup
    registry_created = False
    if not hasattr(_app.state, "provider_registry"):
        _app.state.provider_registry = ProviderRegistry(settings)
        registry_created = True
    logger.info(
        "Providers ready",
        data={"providers": _app.state.provider_registry.list_providers()},
    )

    yield

    # Shutdown
    logger.info("Shutting down Nexus backend")
    if registry_created:
        await _app.state.provider_registry.aclose()
        del _app.state.provider_registry
    engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Nexus",
        description="Chat backend relaying upstream generations over Server-Sent Events",
        version=__version__,
        lifespan=lifespan,
        docs_url=settings.docs_url,
        redoc_url=None,
    )

    # Setup exception handlers (must be before middleware)
    setup_exception_handlers(app)

    # Request context (inject request ID, log requests)
    app.add_middleware(RequestContextMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(sessions_router)
    app.include_router(messages_router)
    app.include_router(debug_router)

    return app


def run() -> None:
    """Console entry point: serve with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "nexus.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
