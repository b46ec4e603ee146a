"""
API Key Model
=============

SQLModel table for gateway API keys.
Keys are stored as HMAC-SHA256 hashes. The raw key is shown once at creation
time and never persisted; ``key_preview`` is computed at creation and never
changes afterwards.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel
from sqlmodel import Field, SQLModel

from app.core.timeutils import utcnow


class ApiKey(SQLModel, table=True):
    """
    Persistent API key record.

    ``key_hash`` is HMAC-SHA256(raw_key, pepper). Revocation flips
    ``is_active`` and stamps ``revoked_at``; rows are never deleted.
    """

    __tablename__ = "api_keys"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        max_length=36,
    )
    user_id: str = Field(index=True, max_length=36, foreign_key="users.id")
    key_hash: str = Field(index=True, unique=True, max_length=128)
    key_preview: str = Field(max_length=32)
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    last_used_at: Optional[datetime] = Field(default=None, nullable=True)
    usage_count: int = Field(default=0)
    revoked_at: Optional[datetime] = Field(default=None, nullable=True)


class GeneratedApiKey(BaseModel):
    """Returned once by ApiKeyStore.generate(); the only place raw_key appears."""

    id: str
    raw_key: str
    preview: str
    created_at: datetime


class VerifiedApiKey(BaseModel):
    id: str
    user_id: str


class ApiKeyInfo(BaseModel):
    """Listing view of a key. Never carries the secret or its hash."""

    id: str
    preview: str
    is_active: bool
    created_at: datetime
    last_used_at: Optional[datetime] = None
    usage_count: int = 0
    revoked_at: Optional[datetime] = None
