"""
Pydantic schemas for records returned by the ledger and API request bodies.
"""

from .case import (
    ActionRequest,
    CaseEventRecord,
    CaseRecord,
    EscalationResultResponse,
    NoteRequest,
    ReasonRequest,
    ReverseRequest,
    WarnRequest,
    WarnResponse,
)
from .escalation import EscalationConfig, EscalationConfigResponse, EscalationConfigUpdate
from .note import UserNoteCreate, UserNoteEdit, UserNoteRecord
from .warning import WarningCount, WarningRecord

__all__ = [
    "ActionRequest", "CaseEventRecord", "CaseRecord", "EscalationResultResponse",
    "NoteRequest", "ReasonRequest", "ReverseRequest", "WarnRequest", "WarnResponse",
    "EscalationConfig", "EscalationConfigResponse", "EscalationConfigUpdate",
    "UserNoteCreate", "UserNoteEdit", "UserNoteRecord",
    "WarningCount", "WarningRecord",
]
