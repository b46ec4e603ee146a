"""
Credential Record Model
=======================

One encrypted OAuth client descriptor per user. Only the Crypto Service
output is stored; the plaintext descriptor never reaches the datastore.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from sqlmodel import Column, Field, SQLModel, Text

from app.core.timeutils import utcnow


class CredentialRecord(SQLModel, table=True):
    __tablename__ = "credential_records"

    user_id: str = Field(primary_key=True, max_length=36, foreign_key="users.id")
    encrypted_descriptor: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CredentialStatus(BaseModel):
    configured: bool
    updated_at: Optional[datetime] = None
