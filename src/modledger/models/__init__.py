# src/modledger/models/__init__.py
"""SQLAlchemy models for the moderation ledger."""

from .case import CaseEvent, CaseEventType, CaseKind, CaseStatus, ModerationCase
from .escalation import EscalationConfigRow
from .note import UserNote
from .warning import WarningEntry

__all__ = [
    "CaseEvent", "CaseEventType", "CaseKind", "CaseStatus", "ModerationCase",
    "EscalationConfigRow",
    "UserNote",
    "WarningEntry",
]
