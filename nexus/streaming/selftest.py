"""Synthetic fragment source for verifying the SSE transport path.

Used to tell apart "a proxy is buffering the stream" from "the model is
slow" without involving any upstream integration.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass


@dataclass(frozen=True)
class TickParams:
    count: int
    interval_ms: int


def clamp_tick_params(
    count: int,
    interval_ms: int,
    max_count: int = 200,
    min_interval_ms: int = 10,
) -> TickParams:
    """Cap ``count`` at ``max_count`` (negatives become 0) and floor the interval."""
    return TickParams(
        count=max(0, min(count, max_count)),
        interval_ms=max(interval_ms, min_interval_ms),
    )


async def tick_fragments(params: TickParams, cancelled: asyncio.Event) -> AsyncIterator[str]:
    """Yield ``tick-1`` .. ``tick-N``, each after one interval has elapsed."""
    interval = params.interval_ms / 1000
    for index in range(1, params.count + 1):
        await asyncio.sleep(interval)
        if cancelled.is_set():
            return
        yield f"tick-{index}"
