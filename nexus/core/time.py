"""Time helpers."""

import time
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Naive UTC timestamp for database columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def epoch_ms() -> int:
    """Milliseconds since the Unix epoch."""
    return int(time.time() * 1000)
