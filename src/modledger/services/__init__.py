# src/modledger/services/__init__.py
"""Business logic services for the moderation ledger."""

from .cache import CacheService
from .coordinator import CacheHealth, ConsistencyCoordinator
from .escalation import EscalationEvaluator, EscalationResult
from .ledger import CaseLedger
from .moderation import ModerationService, get_moderation_service

__all__ = [
    "CacheService",
    "CacheHealth",
    "CaseLedger",
    "ConsistencyCoordinator",
    "EscalationEvaluator",
    "EscalationResult",
    "ModerationService",
    "get_moderation_service",
]
