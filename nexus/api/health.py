"""
Health check endpoints.

``/health`` is a liveness check. ``/readyz`` checks the database and,
when ``READINESS_CHECK_PROVIDERS`` is set, every configured upstream.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from nexus import __version__
from nexus.config import get_settings
from nexus.db import verify_database_connection

router = APIRouter(tags=["health"])


@router.get("/health")
@router.get("/healthz")
async def healthcheck(request: Request) -> dict[str, Any]:
    """
    Health check endpoint.

    Returns basic service health status. Used by load balancers,
    orchestrators, and monitoring systems.
    """
    settings = get_settings()
    registry = getattr(request.app.state, "provider_registry", None)

    return {
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
        "environment": settings.environment,
        "providers": registry.list_providers() if registry else [],
    }


@router.get("/readyz")
async def readiness(request: Request) -> JSONResponse:
    """Return 200 when the service can take traffic, 503 otherwise."""
    checks: dict[str, bool] = {
        "database": verify_database_connection(request.app.state.engine),
    }
    payload: dict[str, Any] = {}

    if get_settings().readiness_check_providers:
        registry = getattr(request.app.state, "provider_registry", None)
        provider_checks = await registry.healthcheck_all() if registry else {}
        checks["providers"] = bool(provider_checks) and all(provider_checks.values())
        payload["details"] = {"providers": provider_checks}

    ready = all(checks.values())
    payload.update(
        status="ready" if ready else "not_ready",
        timestamp=datetime.now(UTC).isoformat(),
        checks=checks,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=payload,
    )
