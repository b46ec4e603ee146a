"""
User and Session Models
=======================

``users`` rows are created by the external identity provider; the gateway
only reads them. ``user_sessions`` backs the default session verifier: the
raw session token is never stored, only its HMAC-SHA256 hash.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlmodel import Field, SQLModel

from app.core.timeutils import utcnow


class User(SQLModel, table=True):
    """End user of the gateway."""

    __tablename__ = "users"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        max_length=36,
    )
    email: str = Field(index=True, unique=True, max_length=320)
    name: Optional[str] = Field(default=None, nullable=True, max_length=255)
    is_admin: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def display(self) -> str:
        return self.name or self.email


class UserSession(SQLModel, table=True):
    """Login session issued on behalf of the identity provider."""

    __tablename__ = "user_sessions"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        max_length=36,
    )
    user_id: str = Field(index=True, max_length=36, foreign_key="users.id")
    token_hash: str = Field(index=True, unique=True, max_length=128)
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    revoked_at: Optional[datetime] = Field(default=None, nullable=True)
