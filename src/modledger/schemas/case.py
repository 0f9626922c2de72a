"""Case-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modledger.db.time import as_utc
from modledger.models.case import CaseEventType, CaseKind, CaseStatus
from modledger.schemas.warning import WarningRecord


class CaseRecord(BaseModel):
    """Formatted case handed to collaborators for display or dispatch."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    community_id: int
    case_number: int
    case_code: str
    action_case_number: int
    label: str = Field(..., description="Per-community label such as `W3`")
    kind: CaseKind
    target_user_id: int
    actor_id: int
    reason: str
    status: CaseStatus
    duration_seconds: int | None = None
    expires_at: datetime | None = None
    created_at: datetime
    reversed_by: int | None = None
    reversed_at: datetime | None = None
    note: str | None = None
    source_warning_id: int | None = None

    @field_validator("created_at", "expires_at", "reversed_at")
    @classmethod
    def _normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @property
    def is_terminal(self) -> bool:
        return self.status is not CaseStatus.ACTIVE


class CaseEventRecord(BaseModel):
    """One entry of a case's audit trail."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    case_id: int
    event_type: CaseEventType
    actor_id: int
    note: str | None = None
    old_reason: str | None = None
    new_reason: str | None = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _normalize_created_at(cls, value: datetime) -> datetime:
        return as_utc(value)


class WarnRequest(BaseModel):
    """Schema for recording a warning."""

    community_id: int
    user_id: int
    moderator_id: int
    reason: str = Field(..., description="Non-empty reason shown in the modlog")


class ActionRequest(BaseModel):
    """Schema for recording a ban, kick or timeout."""

    community_id: int
    user_id: int
    moderator_id: int
    kind: CaseKind
    reason: str
    duration_seconds: int | None = Field(
        default=None, description="Required and positive for timeouts"
    )


class ReverseRequest(BaseModel):
    """Schema for reversing a case."""

    actor_id: int


class NoteRequest(BaseModel):
    """Schema for attaching a note to a case."""

    actor_id: int
    note: str


class ReasonRequest(BaseModel):
    """Schema for editing a case reason."""

    actor_id: int
    reason: str


class EscalationResultResponse(BaseModel):
    """Escalation triggered by a warning, if any."""

    outcome: str
    case: CaseRecord | None = None


class WarnResponse(BaseModel):
    """Recorded warning, its case and the resulting escalation."""

    warning: WarningRecord
    case: CaseRecord
    escalation: EscalationResultResponse
