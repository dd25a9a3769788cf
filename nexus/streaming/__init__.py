"""Server-Sent Events streaming: framing, relay sessions and the transport self-test."""

from nexus.streaming.relay import (
    ClientConnection,
    ClientDisconnected,
    RelayResponse,
    RelaySession,
    RelayState,
    open_relay,
)
from nexus.streaming.selftest import TickParams, clamp_tick_params, tick_fragments
from nexus.streaming.sse import (
    SSE_HEADERS,
    SSE_MEDIA_TYPE,
    format_comment_frame,
    format_data_frame,
)

__all__ = [
    "ClientConnection",
    "ClientDisconnected",
    "RelayResponse",
    "RelaySession",
    "RelayState",
    "SSE_HEADERS",
    "SSE_MEDIA_TYPE",
    "TickParams",
    "clamp_tick_params",
    "format_comment_frame",
    "format_data_frame",
    "open_relay",
    "tick_fragments",
]
