# src/modledger/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    cases_router,
    escalation_router,
    notes_router,
    system_router,
    warnings_router,
)

__all__ = [
    "cases_router",
    "escalation_router",
    "notes_router",
    "system_router",
    "warnings_router",
]
