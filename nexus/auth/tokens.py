"""Opaque bearer tokens.

Tokens are random strings handed to the client once; only their SHA-256
hash is persisted.
"""

import hashlib
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session as DBSession

from nexus.config import get_settings
from nexus.core.time import utcnow
from nexus.db.models import AuthToken, User


def _hash_token(token: str) -> str:
    """Hash a bearer token."""
    return hashlib.sha256(token.encode()).hexdigest()


def issue_token(db: DBSession, user: User, ttl_seconds: Optional[int] = None) -> str:
    """Create a new bearer token for a user and return its plaintext value."""
    settings = get_settings()
    token = secrets.token_urlsafe(32)

    row = AuthToken(
        user_id=user.id,
        token_hash=_hash_token(token),
        expires_at=utcnow() + timedelta(seconds=ttl_seconds or settings.auth_token_ttl_seconds),
    )
    db.add(row)
    db.commit()

    return token


def validate_token(db: DBSession, token: str) -> Optional[AuthToken]:
    """Return the token row if the token is known and unexpired."""
    if not token:
        return None

    return db.query(AuthToken).filter(
        AuthToken.token_hash == _hash_token(token),
        AuthToken.expires_at > utcnow(),
    ).first()


def revoke_token(db: DBSession, token: str) -> bool:
    """Revoke a bearer token."""
    if not token:
        return False

    result = db.query(AuthToken).filter(AuthToken.token_hash == _hash_token(token)).delete()
    db.commit()
    return result > 0


def cleanup_expired_tokens(db: DBSession) -> int:
    """Remove expired tokens."""
    result = db.query(AuthToken).filter(AuthToken.expires_at <= utcnow()).delete()
    db.commit()
    return result
