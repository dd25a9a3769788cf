"""Authentication endpoints."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session as DBSession

from nexus.auth.dependencies import bearer_token, get_current_user
from nexus.auth.tokens import revoke_token
from nexus.core.logging import get_logger
from nexus.db import get_db
from nexus.db.models import User

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/logout")
async def logout(
    request: Request,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Revoke the bearer token used for this request."""
    revoke_token(db, bearer_token(request))
    logger.info("User logged out", data={"user_id": current_user.id})
    return {"success": True}
