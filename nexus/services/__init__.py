"""Application services."""

from nexus.services.chat_service import ChatService, agent_reply_finalizer

__all__ = ["ChatService", "agent_reply_finalizer"]
