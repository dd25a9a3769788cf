"""Chat service for handling chat sessions, messages and generation setup."""

import json
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session as DBSession
from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from nexus.core.exceptions import ProviderError
from nexus.core.logging import get_logger
from nexus.core.time import utcnow
from nexus.db.models import Agent, ChatSession, Message, User
from nexus.providers.base import BaseProvider, GenerationParams
from nexus.providers.registry import ProviderRegistry
from nexus.streaming.relay import Finalizer, UpstreamCall

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."
DEFAULT_AGENT_NAME = "Nexus"
DEFAULT_AGENT_ID = "a1"
LAST_MESSAGE_PREVIEW_CHARS = 100
EXAMPLES_CONTEXT_KEY = "_successful_examples_"


class ChatService:
    """Service for managing chat sessions and preparing generations."""

    def __init__(self, db: DBSession, registry: Optional[ProviderRegistry]):
        """Initialize chat service."""
        self.db = db
        self.registry = registry

    def create_session(self, user: User, title: str = "New Chat") -> ChatSession:
        """Create a new chat session."""
        session = ChatSession(user_id=user.id, title=title)
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)
        return session

    def get_session(self, session_id: str, user: User) -> Optional[ChatSession]:
        """Get a chat session owned by ``user``."""
        return self.db.query(ChatSession).filter(
            ChatSession.id == session_id,
            ChatSession.user_id == user.id,
        ).first()

    def list_sessions(self, user: User, limit: int = 50, offset: int = 0) -> List[ChatSession]:
        """List user's chat sessions, most recently active first."""
        return self.db.query(ChatSession).filter(
            ChatSession.user_id == user.id,
        ).order_by(
            ChatSession.updated_at.desc()
        ).offset(offset).limit(limit).all()

    def update_session(
        self,
        session: ChatSession,
        title: Optional[str] = None,
        last_message: Optional[str] = None,
    ) -> ChatSession:
        """Apply the given fields and bump ``updated_at``."""
        if title is not None:
            session.title = title
        if last_message is not None:
            session.last_message = last_message[:LAST_MESSAGE_PREVIEW_CHARS]
        session.updated_at = utcnow()
        self.db.commit()
        return session

    def delete_session(self, session: ChatSession) -> None:
        """Delete a session; its messages go with it."""
        self.db.delete(session)
        self.db.commit()

    def add_user_message(self, session: ChatSession, user: User, content: str) -> Message:
        """Persist the user's message and refresh the session preview."""
        message = Message(
            session_id=session.id,
            type="USER",
            content=content,
            sender_id=user.id,
            sender_name=user.name or "User",
            sender_avatar=user.avatar,
        )
        self.db.add(message)
        session.last_message = content[:LAST_MESSAGE_PREVIEW_CHARS]
        session.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(message)
        return message

    def get_messages(self, session: ChatSession, limit: Optional[int] = 200) -> List[Message]:
        """Get messages in a chat session, oldest first. ``limit=None`` returns all."""
        return self.db.query(Message).filter(
            Message.session_id == session.id,
        ).order_by(Message.timestamp.asc(), Message.id.asc()).limit(limit).all()

    def set_feedback(self, message_id: str, user: User, feedback: Optional[str]) -> Optional[Message]:
        """Record feedback on a message in one of the user's sessions."""
        message = (
            self.db.query(Message)
            .join(ChatSession, Message.session_id == ChatSession.id)
            .filter(Message.id == message_id, ChatSession.user_id == user.id)
            .first()
        )
        if not message:
            return None
        message.feedback = feedback
        self.db.commit()
        return message

    def resolve_agent(self, agent_id: Optional[str]) -> Tuple[str, str]:
        """Return (system_prompt, agent_name) for ``agent_id`` or the defaults."""
        if agent_id:
            agent = self.db.query(Agent).filter(Agent.id == agent_id).first()
            if agent:
                return agent.system_prompt, agent.name
        return DEFAULT_SYSTEM_PROMPT, DEFAULT_AGENT_NAME

    @staticmethod
    def user_memory(user: User) -> Optional[str]:
        """Free-text memory from the user's stored preferences."""
        prefs = user.preferences
        if isinstance(prefs, str):
            return prefs
        if isinstance(prefs, dict) and isinstance(prefs.get("memory"), str):
            return prefs["memory"]
        return None

    def build_generation(
        self,
        session: ChatSession,
        user: User,
        content: str,
        agent_id: Optional[str] = None,
        model_override: Optional[str] = None,
        context_data: Optional[Dict[str, Any]] = None,
    ) -> Tuple[GenerationParams, str]:
        """Assemble upstream parameters. Returns (params, agent_name)."""
        system_prompt, agent_name = self.resolve_agent(agent_id)

        prompt = content
        examples: List[str] = []
        if context_data:
            context_block = json.dumps(context_data, indent=2, ensure_ascii=False)
            prompt = (
                f"\n\n[[CURRENT PROJECT CONTEXT]]\n{context_block}\n[[END CONTEXT]]\n\n{content}"
            )
            raw_examples = context_data.get(EXAMPLES_CONTEXT_KEY)
            if isinstance(raw_examples, list):
                examples = [str(example) for example in raw_examples]

        logger.info(
            "Prepared generation",
            data={
                "session_id": session.id,
                "agent": agent_name,
                "has_context": bool(context_data),
                "examples": len(examples),
                "prompt_length": len(prompt),
            },
        )

        params = GenerationParams(
            prompt=prompt,
            system_instruction=system_prompt,
            model=model_override,
            user_preferences=self.user_memory(user),
            context_examples=examples,
            session_id=session.id,
        )
        return params, agent_name

    def upstream_call(self, provider_name: Optional[str] = None) -> UpstreamCall:
        """Resolve the provider that will produce fragments for this request.

        A missing provider is reported through the stream, after headers are
        committed, like any other upstream failure.
        """
        provider: Optional[BaseProvider] = None
        if self.registry is not None:
            provider = self.registry.get_provider(provider_name)
        if provider is not None:
            return provider.stream_text

        async def unavailable(params, cancelled):
            raise ProviderError("No API configuration found. Please configure an API in the admin settings.")
            yield  # pragma: no cover

        return unavailable


def agent_reply_finalizer(
    session_factory: sessionmaker,
    session_id: str,
    agent_id: Optional[str],
    agent_name: str,
) -> Finalizer:
    """Persist the assembled agent reply once the upstream is exhausted.

    Uses its own database session: the request-scoped one may already be
    closed while the response is still streaming.
    """

    def save(content: str) -> str:
        db = session_factory()
        try:
            message = Message(
                session_id=session_id,
                type="AGENT",
                content=content,
                sender_id=agent_id or DEFAULT_AGENT_ID,
                sender_name=agent_name,
                related_agent_id=agent_id or DEFAULT_AGENT_ID,
            )
            db.add(message)
            db.commit()
            return message.id
        finally:
            db.close()

    async def finalize(content: str) -> Dict[str, Any]:
        # Blocking database I/O runs off the event loop
        message_id = await run_in_threadpool(save, content)
        logger.info(
            "Saved agent reply",
            data={"session_id": session_id, "message_id": message_id, "length": len(content)},
        )
        return {"messageId": message_id}

    return finalize
