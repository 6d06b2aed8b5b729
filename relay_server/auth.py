"""
Session auth for the relay.

Passwords are stored as bcrypt hashes. A successful login issues an opaque
token kept in the `session` cookie; the token maps to a user id in memory.
"""
import secrets
from typing import Dict, Optional

import bcrypt
from fastapi import Cookie, HTTPException

from logging_setup import get_logger, Component
from .store import User, chat_store

SESSION_COOKIE = "session"
BCRYPT_ROUNDS = 12

logger = get_logger(Component.AUTH)


def hash_password(password: str, *, rounds: int = BCRYPT_ROUNDS) -> str:
    """bcrypt hash of the password. Raises ValueError past bcrypt's 72-byte limit."""
    secret = password.encode("utf-8")
    if len(secret) > 72:
        raise ValueError("password is longer than 72 bytes")
    return bcrypt.hashpw(secret, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, stored: str) -> bool:
    secret = password.encode("utf-8")
    if len(secret) > 72:
        return False
    try:
        return bcrypt.checkpw(secret, stored.encode("utf-8"))
    except ValueError:
        # not a bcrypt hash
        return False


class SessionRegistry:
    """Maps opaque session tokens to user ids."""

    def __init__(self):
        self._tokens: Dict[str, int] = {}

    def create(self, user_id: int) -> str:
        token = secrets.token_urlsafe(32)
        self._tokens[token] = user_id
        return token

    def resolve(self, token: Optional[str]) -> Optional[int]:
        if not token:
            return None
        return self._tokens.get(token)

    def revoke(self, token: Optional[str]) -> bool:
        if not token:
            return False
        return self._tokens.pop(token, None) is not None

    def clear(self) -> None:
        self._tokens.clear()


# Global session registry
session_registry = SessionRegistry()


def authenticate(username: str, password: str) -> Optional[User]:
    user = chat_store.get_user_by_username(username)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Login rejected", username_known=user is not None)
        return None
    return user


def require_user(session: Optional[str] = Cookie(None, alias=SESSION_COOKIE)) -> User:
    """FastAPI dependency: the logged-in user, or 401."""
    user_id = session_registry.resolve(session)
    user = chat_store.get_user(user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
