"""Chat session endpoints."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session as DBSession

from nexus.auth.dependencies import get_current_user
from nexus.core.exceptions import NotFoundError
from nexus.db import get_db
from nexus.db.models import ChatSession, User
from nexus.services.chat_service import ChatService

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


class CreateSessionRequest(BaseModel):
    title: str = Field(default="New Chat", min_length=1, max_length=255)


class UpdateSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    last_message: Optional[str] = Field(default=None, alias="lastMessage")


class SessionModel(BaseModel):
    """Chat session model."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    last_message: Optional[str] = Field(default=None, alias="lastMessage")
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")

    @classmethod
    def from_row(cls, session: ChatSession) -> "SessionModel":
        return cls(
            id=session.id,
            title=session.title,
            last_message=session.last_message,
            created_at=session.created_at.isoformat(),
            updated_at=session.updated_at.isoformat(),
        )


@router.post("", response_model=SessionModel, response_model_by_alias=True)
async def create_session(
    body: CreateSessionRequest,
    request: Request,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a new chat session."""
    service = ChatService(db, getattr(request.app.state, "provider_registry", None))
    return SessionModel.from_row(service.create_session(current_user, title=body.title))


@router.get("", response_model=List[SessionModel], response_model_by_alias=True)
async def list_sessions(
    request: Request,
    limit: int = 50,
    offset: int = 0,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List the caller's chat sessions."""
    service = ChatService(db, getattr(request.app.state, "provider_registry", None))
    return [SessionModel.from_row(s) for s in service.list_sessions(current_user, limit, offset)]


def _owned_session(service: ChatService, session_id: str, user: User) -> ChatSession:
    session = service.get_session(session_id, user)
    if not session:
        raise NotFoundError("Session not found")
    return session


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    request: Request,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Return one session with its messages, oldest first."""
    service = ChatService(db, getattr(request.app.state, "provider_registry", None))
    session = _owned_session(service, session_id, current_user)
    return {
        **SessionModel.from_row(session).model_dump(by_alias=True),
        "messages": [m.to_dict() for m in service.get_messages(session, limit=None)],
    }


@router.patch("/{session_id}")
async def update_session(
    session_id: str,
    body: UpdateSessionRequest,
    request: Request,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Rename a session or overwrite its last-message preview."""
    service = ChatService(db, getattr(request.app.state, "provider_registry", None))
    session = _owned_session(service, session_id, current_user)
    if body.title is None and body.last_message is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    service.update_session(session, title=body.title, last_message=body.last_message)
    return {"success": True}


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    request: Request,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Delete a session and all of its messages."""
    service = ChatService(db, getattr(request.app.state, "provider_registry", None))
    service.delete_session(_owned_session(service, session_id, current_user))
    return {"success": True}
