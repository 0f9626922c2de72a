"""Warning-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from modledger.db.time import as_utc


class WarningRecord(BaseModel):
    """Immutable warning entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    community_id: int
    user_id: int
    moderator_id: int
    reason: str
    warned_at: datetime

    @field_validator("warned_at")
    @classmethod
    def _normalize_warned_at(cls, value: datetime) -> datetime:
        return as_utc(value)


class WarningCount(BaseModel):
    """Sliding-window warning count as cached by the coordinator.

    ``fresh_until`` is the instant at which the oldest counted warning leaves
    the window, i.e. the latest moment the count is guaranteed accurate.
    """

    count: int
    fresh_until: datetime | None = None
