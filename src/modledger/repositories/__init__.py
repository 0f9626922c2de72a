"""Repositories: the only code that issues SQL against the durable store."""

from .case_repo import CaseRepository
from .escalation_repo import EscalationConfigRepository
from .note_repo import NoteRepository
from .warning_repo import WarningRepository

__all__ = [
    "CaseRepository",
    "EscalationConfigRepository",
    "NoteRepository",
    "WarningRepository",
]
