"""Bearer-token authentication."""

from nexus.auth.dependencies import get_current_user
from nexus.auth.tokens import issue_token, revoke_token, validate_token

__all__ = [
    "get_current_user",
    "issue_token",
    "revoke_token",
    "validate_token",
]
