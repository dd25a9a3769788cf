"""Diagnostic endpoints.

``/api/debug/sse`` streams synthetic ticks through the same relay as real
replies. Use it to check whether a proxy buffers the stream, whether the
browser can read it, and whether the backend flushes promptly.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from nexus.auth.dependencies import get_current_user
from nexus.config import get_settings
from nexus.core.logging import get_logger
from nexus.db.models import User
from nexus.streaming.relay import open_relay
from nexus.streaming.selftest import clamp_tick_params, tick_fragments

logger = get_logger(__name__)
router = APIRouter(prefix="/api/debug", tags=["debug"])


@router.get("/sse")
async def sse_selftest(
    count: int = Query(default=20),
    interval_ms: int = Query(default=100, alias="intervalMs"),
    current_user: User = Depends(get_current_user),
):
    """Stream ``count`` tick frames, one every ``intervalMs`` milliseconds."""
    settings = get_settings()
    if not settings.sse_selftest_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    params = clamp_tick_params(
        count,
        interval_ms,
        max_count=settings.sse_selftest_max_count,
        min_interval_ms=settings.sse_selftest_min_interval_ms,
    )
    logger.info(
        "SSE self-test requested",
        data={"user_id": current_user.id, "count": params.count, "interval_ms": params.interval_ms},
    )
    return open_relay(params, tick_fragments)
