"""FastAPI dependencies for authentication."""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session as DBSession

from nexus.auth.tokens import validate_token
from nexus.core.exceptions import AuthenticationError
from nexus.core.logging import get_logger
from nexus.db import get_db
from nexus.db.models import User

logger = get_logger(__name__)


def bearer_token(request: Request) -> Optional[str]:
    """Token from an ``Authorization: Bearer ...`` header, if present."""
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


async def get_current_user(
    request: Request,
    db: DBSession = Depends(get_db),
) -> User:
    """Get the current authenticated user.

    Raises:
        AuthenticationError: If no valid bearer token identifies an active user.
    """
    token = bearer_token(request)
    if not token:
        logger.info("Rejected request without bearer token", data={"path": request.url.path})
        raise AuthenticationError("No token provided")

    row = validate_token(db, token)
    if not row:
        logger.info("Rejected invalid or expired token", data={"path": request.url.path})
        raise AuthenticationError("Invalid token")

    user = db.query(User).filter(User.id == row.user_id).first()
    if not user or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    return user

