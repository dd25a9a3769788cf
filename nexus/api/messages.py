"""Message endpoints, including the streaming send."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session as DBSession

from nexus.auth.dependencies import get_current_user
from nexus.core.exceptions import NotFoundError
from nexus.core.logging import get_logger
from nexus.db import get_db
from nexus.db.models import User
from nexus.services.chat_service import ChatService, agent_reply_finalizer
from nexus.streaming.relay import open_relay

logger = get_logger(__name__)
router = APIRouter(prefix="/api/messages", tags=["messages"])


class SendMessageRequest(BaseModel):
    """Send message request."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(default=None, alias="sessionId")
    content: Optional[str] = None
    agent_id: Optional[str] = Field(default=None, alias="agentId")
    model_override: Optional[str] = Field(default=None, alias="modelOverride")
    provider: Optional[str] = None
    context_data: Optional[Dict[str, Any]] = Field(default=None, alias="contextData")


class FeedbackRequest(BaseModel):
    feedback: Optional[str] = Field(default=None, max_length=16)


def _chat_service(request: Request, db: DBSession) -> ChatService:
    return ChatService(db, getattr(request.app.state, "provider_registry", None))


@router.post("/send")
async def send_message(
    body: SendMessageRequest,
    request: Request,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Save the user's message and stream the agent reply as SSE."""
    if not body.session_id or not body.content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session ID and content are required",
        )

    service = _chat_service(request, db)
    session = service.get_session(body.session_id, current_user)
    if not session:
        raise NotFoundError("Session not found")

    service.add_user_message(session, current_user, body.content)
    params, agent_name = service.build_generation(
        session,
        current_user,
        body.content,
        agent_id=body.agent_id,
        model_override=body.model_override,
        context_data=body.context_data,
    )

    logger.info(
        "Starting reply stream",
        data={"session_id": session.id, "user_id": current_user.id, "agent": agent_name},
    )
    return open_relay(
        params,
        service.upstream_call(body.provider),
        finalize=agent_reply_finalizer(
            request.app.state.session_factory,
            session.id,
            body.agent_id,
            agent_name,
        ),
    )


@router.get("/session/{session_id}")
async def list_messages(
    session_id: str,
    request: Request,
    limit: int = 200,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[Dict[str, Any]]:
    """Get messages in a chat session."""
    service = _chat_service(request, db)
    session = service.get_session(session_id, current_user)
    if not session:
        raise NotFoundError("Session not found")

    return [m.to_dict() for m in service.get_messages(session, limit)]


@router.patch("/{message_id}/feedback")
async def update_feedback(
    message_id: str,
    body: FeedbackRequest,
    request: Request,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Record thumbs-up/down style feedback on a message."""
    service = _chat_service(request, db)
    message = service.set_feedback(message_id, current_user, body.feedback)
    if not message:
        raise NotFoundError("Message not found")

    return {"success": True}
