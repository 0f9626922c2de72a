"""User note schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modledger.db.time import as_utc
from modledger.models.note import NOTE_MAX_LENGTH


class UserNoteRecord(BaseModel):
    """A live note about a community member."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    community_id: int
    target_user_id: int
    author_id: int
    content: str
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_timestamps(cls, value: datetime) -> datetime:
        return as_utc(value)


class UserNoteCreate(BaseModel):
    """Schema for adding a note about a user."""

    community_id: int
    user_id: int
    author_id: int
    content: str = Field(..., description=f"Non-empty, at most {NOTE_MAX_LENGTH} characters")


class UserNoteEdit(BaseModel):
    """Schema for replacing the content of a note."""

    community_id: int
    content: str
