# src/modledger/services/moderation.py
"""Moderation service: the operation surface offered to collaborators."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from modledger.core.errors import CacheError
from modledger.core.settings import Settings, settings
from modledger.db.session import SessionFactory, SessionLocal
from modledger.db.time import utcnow
from modledger.schemas.case import CaseRecord
from modledger.schemas.escalation import EscalationConfig, EscalationConfigUpdate
from modledger.schemas.warning import WarningRecord
from modledger.services.cache import CacheService, build_cache_service
from modledger.services.coordinator import CacheHealth, ConsistencyCoordinator, describe_cache
from modledger.services.escalation import EscalationEvaluator, EscalationResult
from modledger.services.ledger import CaseLedger


@dataclass(frozen=True)
class WarnOutcome:
    """A recorded warning, its case, and the escalation it caused (if any)."""

    warning: WarningRecord
    case: CaseRecord
    escalation: EscalationResult


class ModerationService:
    """Wires the ledger, the evaluator and the coordinator together."""

    def __init__(
        self,
        session_factory: SessionFactory,
        cache: CacheService,
        *,
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
        health: CacheHealth | None = None,
    ) -> None:
        self.coordinator = ConsistencyCoordinator(
            session_factory,
            cache,
            config_ttl_seconds=config.cache_config_ttl_seconds,
            exclude_reversed_warnings=config.escalation_exclude_reversed_warnings,
            health=health
            or CacheHealth(config.cache_failure_threshold, config.cache_cooldown_seconds),
            clock=clock,
        )
        self.ledger = CaseLedger(
            session_factory,
            self.coordinator,
            system_actor_id=config.escalation_system_actor_id,
            page_limit_max=config.cases_page_limit_max,
            clock=clock,
        )
        self.evaluator = EscalationEvaluator(
            self.ledger,
            tiered_timeouts=config.escalation_tiered_timeouts,
        )

    def warn(self, community_id: int, user_id: int, moderator_id: int, reason: str) -> WarnOutcome:
        """Record a warning and run escalation for it.

        The warning is committed before escalation runs, so it succeeds even
        when escalation bookkeeping cannot.
        """
        warning, case = self.ledger.record_warning(community_id, user_id, moderator_id, reason)
        escalation = self.evaluator.evaluate(community_id, user_id, case.id)
        return WarnOutcome(warning=warning, case=case, escalation=escalation)

    def record_action(
        self,
        community_id: int,
        user_id: int,
        moderator_id: int,
        kind: str,
        reason: str,
        duration_seconds: int | None = None,
    ) -> CaseRecord:
        duration = timedelta(seconds=duration_seconds) if duration_seconds is not None else None
        return self.ledger.record_action(community_id, user_id, moderator_id, kind, reason, duration)

    def get_escalation_config(self, community_id: int) -> EscalationConfig:
        return self.coordinator.get_escalation_config(community_id)

    def set_escalation_config(self, config: EscalationConfig) -> EscalationConfig:
        return self.coordinator.set_escalation_config(config)

    def update_escalation_config(
        self, community_id: int, update: EscalationConfigUpdate
    ) -> EscalationConfig:
        """Apply a partial update on top of the stored policy."""
        current = self.coordinator.get_escalation_config(community_id)
        return self.coordinator.set_escalation_config(update.apply(current))

    def reset_escalation_config(self, community_id: int) -> EscalationConfig:
        """Restore the default policy for a community."""
        return self.coordinator.set_escalation_config(EscalationConfig.defaults(community_id))

    def cache_degraded(self) -> bool:
        return self.coordinator.cache_degraded()

    def health(self) -> dict[str, Any]:
        """Return cache status for operational commands."""
        details = describe_cache(self.coordinator)
        reachable: bool | None = None
        if self.coordinator.cache.enabled:
            try:
                self.coordinator.cache.ping()
                reachable = True
            except CacheError:
                reachable = False
        details["reachable"] = reachable
        return details


class _ModerationServiceSingleton:
    """Singleton wrapper for ModerationService."""

    _instance: ModerationService | None = None

    @classmethod
    def get_instance(cls) -> ModerationService:
        """Get or create the process-wide service."""
        if cls._instance is None:
            cls._instance = ModerationService(SessionLocal, build_cache_service(settings))
        return cls._instance


def get_moderation_service() -> ModerationService:
    """Return the process-wide moderation service.

    Degraded-mode state lives on the service, so it is shared across requests.
    """
    return _ModerationServiceSingleton.get_instance()
