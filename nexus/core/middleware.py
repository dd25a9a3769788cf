"""Request context middleware.

Written as raw ASGI rather than ``BaseHTTPMiddleware`` so that streaming
responses reach the client frame by frame and ``http.disconnect`` is
delivered straight to the relay.
"""

import secrets
import time

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from nexus.core.logging import get_logger, request_context

logger = get_logger(__name__)


class RequestContextMiddleware:
    """Inject a request id into the logging context and the response headers."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        request_id = headers.get(b"x-request-id", b"").decode("latin-1") or secrets.token_hex(8)
        method = scope.get("method", "")
        path = scope.get("path", "")
        start_time = time.perf_counter()
        status_code = 500

        token = request_context.set(
            {"request_id": request_id, "path": path, "method": method}
        )

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)["X-Request-ID"] = request_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                f"{method} {path} -> {status_code}",
                data={"duration_ms": round(duration_ms, 2)},
            )
            request_context.reset(token)
