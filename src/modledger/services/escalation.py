# src/modledger/services/escalation.py
"""Automatic escalation of repeated warnings into timeouts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from modledger.core.errors import ModerationError
from modledger.models.case import CaseKind
from modledger.schemas.case import CaseRecord
from modledger.services.ledger import CaseLedger

logger = logging.getLogger(__name__)

# Auto-timeout durations indexed by the number of recent timeouts for the user.
TIERED_TIMEOUTS: tuple[timedelta, ...] = (
    timedelta(minutes=5),
    timedelta(minutes=30),
    timedelta(hours=2),
    timedelta(days=1),
    timedelta(days=7),
)


class EscalationOutcome(str, Enum):
    NO_ACTION = "no_action"
    ESCALATED = "escalated"


@dataclass(frozen=True)
class EscalationResult:
    """Result of evaluating one new warning."""

    outcome: EscalationOutcome
    case: CaseRecord | None = None

    @classmethod
    def no_action(cls) -> EscalationResult:
        return cls(EscalationOutcome.NO_ACTION)

    @classmethod
    def escalated(cls, case: CaseRecord) -> EscalationResult:
        return cls(EscalationOutcome.ESCALATED, case)

    @property
    def case_id(self) -> int | None:
        return self.case.id if self.case is not None else None


class EscalationEvaluator:
    """Decides whether a new warning crosses the community's threshold.

    Evaluation never fails the warning that triggered it: any error while
    reading policy (including a stored policy that fails validation), counting,
    or recording the escalation yields ``NO_ACTION`` and a logged warning.
    """

    def __init__(self, ledger: CaseLedger, *, tiered_timeouts: bool = False) -> None:
        self.ledger = ledger
        self.tiered_timeouts = tiered_timeouts

    def evaluate(self, community_id: int, user_id: int, warn_case_id: int) -> EscalationResult:
        try:
            return self._evaluate(community_id, user_id, warn_case_id)
        except (ModerationError, SQLAlchemyError, PydanticValidationError) as exc:
            logger.warning(
                "Escalation check failed for user %s in community %s: %s",
                user_id,
                community_id,
                exc,
            )
            return EscalationResult.no_action()

    def _evaluate(self, community_id: int, user_id: int, warn_case_id: int) -> EscalationResult:
        config = self.ledger.coordinator.get_escalation_config(community_id)
        if not config.enabled:
            return EscalationResult.no_action()

        count = self.ledger.count_recent_warnings(community_id, user_id, config.warn_window)
        if count < config.warn_threshold:
            return EscalationResult.no_action()

        trigger = self.ledger.get_case(warn_case_id)
        if (
            trigger.kind is not CaseKind.WARN
            or trigger.source_warning_id is None
            or trigger.community_id != community_id
            or trigger.target_user_id != user_id
        ):
            logger.warning(
                "Case %s is not a warning for user %s in community %s; skipping escalation",
                warn_case_id,
                user_id,
                community_id,
            )
            return EscalationResult.no_action()

        case = self.ledger.record_auto_timeout(
            community_id,
            user_id,
            source_warning_id=trigger.source_warning_id,
            warn_threshold=config.warn_threshold,
            warn_window=config.warn_window,
            timeout_window=config.timeout_window,
            tiers=TIERED_TIMEOUTS if self.tiered_timeouts else (),
        )
        if case is None:
            logger.debug("User %s in community %s already escalated for this burst", user_id, community_id)
            return EscalationResult.no_action()

        logger.info(
            "Escalated user %s in community %s with auto-timeout case %s (%ss)",
            user_id,
            community_id,
            case.id,
            case.duration_seconds,
        )
        return EscalationResult.escalated(case)
