"""Exception taxonomy and FastAPI exception handlers."""

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from nexus.core.logging import get_logger, request_context

logger = get_logger(__name__)


class NexusException(Exception):
    """Base exception for the Nexus backend."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: str = "E5000",
        details: dict = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(NexusException):
    """No valid caller identity. Rejected before any streaming starts."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, code="E2000")


class NotFoundError(NexusException):
    """Resource not found."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, code="E4040")


class ProviderError(NexusException):
    """Upstream generation failure."""

    def __init__(self, message: str, provider: str = None, upstream_status: int = None):
        details = {}
        if provider:
            details["provider"] = provider
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        super().__init__(
            message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            code="E3000",
            details=details,
        )


def _request_id() -> str | None:
    ctx = request_context.get()
    return ctx.get("request_id") if ctx else None


def _envelope(code: str, message, **extra) -> dict:
    return {
        "detail": message,
        "error": {
            "code": code,
            "message": message,
            "request_id": _request_id(),
        },
        **extra,
    }


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers with FastAPI app."""

    @app.exception_handler(NexusException)
    async def nexus_exception_handler(request: Request, exc: NexusException) -> JSONResponse:
        """Handle application exceptions."""
        logger.error(
            f"Nexus error: {exc.message}",
            data={"status_code": exc.status_code, "details": exc.details},
        )
        headers = None
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(exc.code, exc.message, **exc.details),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors."""
        logger.warning("Validation error", data={"errors": exc.errors()})
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_envelope("E4220", "Validation error", errors=jsonable_errors(exc)),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(f"E{exc.status_code}0", exc.detail),
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_envelope("E5000", "Internal server error"),
        )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without non-serializable context objects."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
