"""SQLAlchemy database models."""

import secrets

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from nexus.core.time import epoch_ms, utcnow
from nexus.db.database import Base


def generate_id() -> str:
    """Generate a unique ID."""
    return secrets.token_urlsafe(16)


def generate_message_id() -> str:
    """Message ids are time-prefixed so they sort by creation."""
    return f"m{epoch_ms()}-{secrets.token_hex(4)}"


class User(Base):
    """User account model."""

    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(128), nullable=False, default="User")
    avatar = Column(String(512), nullable=True)
    role = Column(String(32), nullable=False, default="user")
    # Free-form preferences; the "memory" entry is injected into generation prompts.
    preferences = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    tokens = relationship("AuthToken", back_populates="user", cascade="all, delete-orphan")
    chat_sessions = relationship("ChatSession", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class AuthToken(Base):
    """Issued bearer token (only its hash is stored)."""

    __tablename__ = "auth_tokens"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String(255), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="tokens")

    def __repr__(self) -> str:
        return f"<AuthToken {self.id[:8]}...>"


class Agent(Base):
    """Specialist agent whose system prompt drives generation."""

    __tablename__ = "agents"

    id = Column(String(32), primary_key=True, default=generate_id)
    name = Column(String(128), nullable=False)
    description = Column(Text, nullable=False, default="")
    system_prompt = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class ChatSession(Base):
    """A user's chat session."""

    __tablename__ = "chat_sessions"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False, default="New Chat")
    last_message = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="chat_sessions")
    messages = relationship(
        "Message",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="Message.timestamp",
    )


class Message(Base):
    """A chat message, either from the user or from an agent."""

    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_session_timestamp", "session_id", "timestamp"),)

    id = Column(String(40), primary_key=True, default=generate_message_id)
    session_id = Column(String(32), ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(16), nullable=False)  # USER | AGENT
    content = Column(Text, nullable=False)
    sender_id = Column(String(32), nullable=True)
    sender_name = Column(String(128), nullable=True)
    sender_avatar = Column(String(512), nullable=True)
    related_agent_id = Column(String(32), nullable=True)
    feedback = Column(String(16), nullable=True)
    timestamp = Column(BigInteger, nullable=False, default=epoch_ms)

    session = relationship("ChatSession", back_populates="messages")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "type": self.type,
            "content": self.content,
            "senderId": self.sender_id,
            "senderName": self.sender_name,
            "senderAvatar": self.sender_avatar,
            "relatedAgentId": self.related_agent_id,
            "feedback": self.feedback,
            "timestamp": self.timestamp,
        }
