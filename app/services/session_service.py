"""
Session Service
===============

Verification of login sessions issued by the identity provider integration.

The gateway only needs one capability from the identity provider:
``verify(token) -> user or None``. SessionVerifier names that contract;
DatabaseSessionVerifier is the default implementation backed by the
``user_sessions`` table. Raw session tokens are never stored, only their
HMAC-SHA256 hash.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from typing import Optional, Protocol

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlmodel import select

from app.core.database import get_engine, get_session_context
from app.core.timeutils import ensure_utc, utcnow
from app.models.user import User, UserSession

logger = logging.getLogger(__name__)

SESSION_TOKEN_BYTES = 32
MAX_TOKEN_LENGTH = 256
DEFAULT_SESSION_TTL = timedelta(days=7)


class SessionVerifier(Protocol):
    def verify(self, token: str) -> Optional[User]:
        """Return the session's user, or None when the token is not a live session."""
        ...


class DatabaseSessionVerifier:
    """Sessions stored in ``user_sessions``."""

    def __init__(
        self,
        hmac_secret: str,
        engine: Optional[Engine] = None,
        default_ttl: timedelta = DEFAULT_SESSION_TTL,
    ):
        if not hmac_secret:
            raise ValueError("DatabaseSessionVerifier requires a non-empty HMAC secret")
        self._pepper = hmac_secret.encode()
        self._engine = engine
        self._default_ttl = default_ttl

    @property
    def engine(self) -> Engine:
        return self._engine or get_engine()

    def _hash(self, token: str) -> str:
        return hmac.new(self._pepper, token.encode(), hashlib.sha256).hexdigest()

    def issue(self, user_id: str, ttl: Optional[timedelta] = None) -> str:
        """Create a session for user_id. Returns the raw token (shown once).

        ttl defaults to the verifier's configured session lifetime.
        """
        token = secrets.token_urlsafe(SESSION_TOKEN_BYTES)
        record = UserSession(
            user_id=user_id,
            token_hash=self._hash(token),
            expires_at=utcnow() + (ttl if ttl is not None else self._default_ttl),
        )
        with get_session_context(self.engine) as session:
            session.add(record)
            session.commit()
        logger.info("Session issued for user=%s", user_id)
        return token

    def verify(self, token: str) -> Optional[User]:
        if not token or len(token) > MAX_TOKEN_LENGTH:
            return None

        token_hash = self._hash(token)
        with get_session_context(self.engine) as session:
            record = session.exec(
                select(UserSession).where(UserSession.token_hash == token_hash)
            ).first()
            if record is None or record.revoked_at is not None:
                return None
            if ensure_utc(record.expires_at) <= utcnow():
                return None
            user = session.get(User, record.user_id)
            if user is None:
                return None
            session.expunge(user)
            return user

    def revoke(self, token: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                update(UserSession)
                .where(UserSession.token_hash == self._hash(token))
                .where(UserSession.revoked_at.is_(None))
                .values(revoked_at=utcnow())
            )
            return result.rowcount > 0
