"""SSE (Server-Sent Events) formatting utilities."""

import json
from typing import Any, Dict

# Sent with every event-stream response, before any body byte.
SSE_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering for SSE
}

SSE_MEDIA_TYPE = "text/event-stream"

# Frame vocabulary
FRAME_START = "start"
FRAME_CHUNK = "chunk"
FRAME_DONE = "done"
FRAME_ERROR = "error"


def format_data_frame(payload: Dict[str, Any]) -> str:
    """Format a single ``data:`` frame.

    Args:
        payload: JSON-serializable event body; must carry a ``type`` key

    Returns:
        Frame string terminated by a blank line
    """
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def format_comment_frame(text: str = "") -> str:
    """Format a comment frame. Clients ignore it; proxies see a first byte."""
    return f":{text}\n\n"
