"""
Request Log Model
=================

One row per gateway invocation that passed identity resolution. ``success``
and ``duration_ms`` stay NULL until the entry is finalized.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlmodel import Column, Field, SQLModel, Text

from app.core.timeutils import utcnow


class RequestLogEntry(SQLModel, table=True):
    __tablename__ = "request_logs"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        max_length=36,
    )
    user_id: str = Field(index=True, max_length=36)
    method: str = Field(max_length=128)
    tool_name: Optional[str] = Field(default=None, nullable=True, max_length=128, index=True)
    timestamp: datetime = Field(default_factory=utcnow, index=True)
    success: Optional[bool] = Field(default=None, nullable=True)
    duration_ms: Optional[int] = Field(default=None, nullable=True)
    error_message: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    ip_address: Optional[str] = Field(default=None, nullable=True, max_length=64)
    user_agent: Optional[str] = Field(default=None, nullable=True, max_length=512)
