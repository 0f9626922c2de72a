# src/modledger/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .cases import router as cases_router
from .escalation import router as escalation_router
from .notes import router as notes_router
from .system import router as system_router
from .warnings import router as warnings_router

__all__ = [
    "cases_router",
    "escalation_router",
    "notes_router",
    "system_router",
    "warnings_router",
]
