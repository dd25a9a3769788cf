"""Database module for the Nexus backend."""

from nexus.db.database import (
    Base,
    get_db,
    make_engine,
    make_session_factory,
    verify_database_connection,
)
from nexus.db.models import (
    Agent,
    AuthToken,
    ChatSession,
    Message,
    User,
)

__all__ = [
    # Database infrastructure
    "Base",
    "get_db",
    "make_engine",
    "make_session_factory",
    "verify_database_connection",
    # Entities
    "User",
    "AuthToken",
    "Agent",
    "ChatSession",
    "Message",
]
