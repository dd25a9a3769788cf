"""Stream relay: one client SSE response fed by one upstream fragment stream.

A :class:`RelaySession` owns the client connection and the upstream
iterator for its whole life. It runs two tasks, a pump (next fragment,
then write) and a disconnect watcher (ASGI ``receive`` until
``http.disconnect``). Whichever finishes first decides the outcome and the
other is cancelled.

Writes are awaited one at a time before the next fragment is pulled, so a
slow client slows upstream consumption instead of growing a buffer.
"""

import asyncio
import secrets
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Any, Dict, List, Optional

from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from nexus.core.logging import bind_context, get_logger
from nexus.core.time import epoch_ms
from nexus.streaming.sse import (
    FRAME_CHUNK,
    FRAME_DONE,
    FRAME_ERROR,
    FRAME_START,
    SSE_HEADERS,
    SSE_MEDIA_TYPE,
    format_comment_frame,
    format_data_frame,
)

logger = get_logger(__name__)

UpstreamCall = Callable[[Any, asyncio.Event], AsyncIterator[str]]
# Receives the assembled reply; may return extra fields for the done frame.
Finalizer = Callable[[str], Awaitable[Optional[Dict[str, Any]]]]


class RelayState(str, Enum):
    """Lifecycle of a relay session."""

    STARTING = "starting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"


_TRANSITIONS = {
    RelayState.STARTING: {RelayState.STREAMING, RelayState.ABORTED},
    RelayState.STREAMING: {RelayState.COMPLETED, RelayState.ABORTED},
    RelayState.COMPLETED: set(),
    RelayState.ABORTED: set(),
}


class ClientDisconnected(Exception):
    """The client went away. A normal termination path, never reported."""


class ClientConnection:
    """Write side of one ASGI HTTP response plus peer-closure detection."""

    def __init__(self, send: Send, receive: Receive, status_code: int, raw_headers: list):
        self._send = send
        self._receive = receive
        self.status_code = status_code
        self.raw_headers = raw_headers
        self.started = False
        self.closed = False
        self.disconnected = False

    async def start(self) -> None:
        """Commit status and headers before any body byte."""
        await self._send(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self.raw_headers,
            }
        )
        self.started = True

    async def write(self, data: str) -> None:
        if self.closed or self.disconnected:
            raise ClientDisconnected()
        try:
            await self._send(
                {"type": "http.response.body", "body": data.encode("utf-8"), "more_body": True}
            )
        except OSError as exc:
            # ASGI 2.4 servers raise on writes to a closed peer
            self.disconnected = True
            raise ClientDisconnected() from exc

    async def close(self) -> None:
        """End the response body. No-op if already closed or the peer is gone."""
        if self.closed:
            return
        self.closed = True
        if self.disconnected or not self.started:
            return
        try:
            await self._send({"type": "http.response.body", "body": b"", "more_body": False})
        except OSError:
            self.disconnected = True

    def abandon(self) -> None:
        """Stop writing without ending the body; the server tears the response down."""
        self.closed = True

    async def wait_disconnected(self) -> None:
        """Return once the server reports that the client closed the connection."""
        while True:
            message = await self._receive()
            if message["type"] == "http.disconnect":
                self.disconnected = True
                return


class RelaySession:
    """One forwarding operation from an upstream call to a client connection."""

    def __init__(
        self,
        params: Any,
        upstream_call: UpstreamCall,
        finalize: Optional[Finalizer] = None,
        session_id: Optional[str] = None,
    ):
        self.id = session_id or secrets.token_hex(8)
        self.params = params
        self.upstream_call = upstream_call
        self.finalize = finalize
        self.state = RelayState.STARTING
        self.sequence_index = 0
        self.cancelled = asyncio.Event()
        self.connection: Optional[ClientConnection] = None
        self.error: Optional[BaseException] = None
        self._parts: List[str] = []

    @property
    def content(self) -> str:
        """Reply text delivered so far."""
        return "".join(self._parts)

    @property
    def finished(self) -> bool:
        return self.state in (RelayState.COMPLETED, RelayState.ABORTED)

    def _transition(self, new_state: RelayState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid relay transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def _abort(self, reason: str) -> None:
        """Terminate without writing anything further."""
        if self.finished:
            return
        self.cancelled.set()
        self._transition(RelayState.ABORTED)
        logger.info(
            "Relay session aborted",
            data={"session_id": self.id, "reason": reason, "chunks": self.sequence_index},
        )

    async def _emit(self, payload: Dict[str, Any]) -> None:
        if self.finished:
            raise RuntimeError("Relay session already finished")
        await self.connection.write(format_data_frame(payload))

    async def run(self, connection: ClientConnection) -> None:
        """Drive the session to a terminal state and release the connection."""
        with bind_context(relay_session=self.id):
            await self._run(connection)

    async def _run(self, connection: ClientConnection) -> None:
        self.connection = connection
        pump: Optional[asyncio.Task] = None
        watcher: Optional[asyncio.Task] = None
        logger.info("Relay session opened", data={"session_id": self.id})

        try:
            await connection.start()
            # First byte for intermediaries that wait for a minimum payload
            await connection.write(format_comment_frame())
            await self._emit({"type": FRAME_START, "sessionId": self.id, "timestamp": epoch_ms()})
            self._transition(RelayState.STREAMING)

            pump = asyncio.create_task(self._pump())
            watcher = asyncio.create_task(connection.wait_disconnected())
            await asyncio.wait({pump, watcher}, return_when=asyncio.FIRST_COMPLETED)

            if not pump.done():
                self._abort("client disconnected")
                pump.cancel()
        except ClientDisconnected:
            self._abort("client disconnected")
        except asyncio.CancelledError:
            connection.abandon()
            self._abort("relay task cancelled")
            raise
        finally:
            for task in (pump, watcher):
                if task is not None and not task.done():
                    task.cancel()
            pending = [task for task in (pump, watcher) if task is not None]
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            await connection.close()

    async def _pump(self) -> None:
        fragments: Optional[AsyncIterator[str]] = None
        try:
            fragments = self.upstream_call(self.params, self.cancelled)
            async for fragment in fragments:
                self.sequence_index += 1
                self._parts.append(fragment)
                await self._emit(
                    {
                        "type": FRAME_CHUNK,
                        "content": fragment,
                        "index": self.sequence_index,
                        "timestamp": epoch_ms(),
                    }
                )

            extra = await self.finalize(self.content) if self.finalize else None
            await self._emit({"type": FRAME_DONE, **(extra or {}), "timestamp": epoch_ms()})
            self._transition(RelayState.COMPLETED)
            logger.info(
                "Relay session completed",
                data={"session_id": self.id, "chunks": self.sequence_index},
            )
        except ClientDisconnected:
            self._abort("client disconnected")
        except Exception as exc:
            await self._fail(exc)
        finally:
            aclose = getattr(fragments, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _fail(self, exc: Exception) -> None:
        self.error = exc
        logger.warning(
            "Upstream failure during relay",
            data={
                "session_id": self.id,
                "error": str(exc),
                "error_type": type(exc).__name__,
                "chunks": self.sequence_index,
            },
        )
        message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
        try:
            await self._emit({"type": FRAME_ERROR, "message": message, "timestamp": epoch_ms()})
        except ClientDisconnected:
            self._abort("client disconnected")
            return
        self._transition(RelayState.ABORTED)
        logger.info(
            "Relay session aborted",
            data={"session_id": self.id, "reason": "upstream failure", "chunks": self.sequence_index},
        )


class RelayResponse(Response):
    """ASGI response that hands its send/receive channels to a relay session."""

    media_type = SSE_MEDIA_TYPE

    def __init__(
        self,
        session: RelaySession,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.session = session
        self.status_code = status_code
        self.background = None
        self.init_headers({**SSE_HEADERS, **(headers or {})})

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        connection = ClientConnection(send, receive, self.status_code, self.raw_headers)
        await self.session.run(connection)


def open_relay(
    params: Any,
    upstream_call: UpstreamCall,
    finalize: Optional[Finalizer] = None,
) -> RelayResponse:
    """Create the streaming response for one relay session."""
    return RelayResponse(RelaySession(params, upstream_call, finalize=finalize))
