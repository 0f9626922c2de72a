"""Escalation policy schemas."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modledger.models.escalation import (
    DEFAULT_ENABLED,
    DEFAULT_TIMEOUT_WINDOW_SECONDS,
    DEFAULT_WARN_THRESHOLD,
    DEFAULT_WARN_WINDOW_SECONDS,
)
from modledger.utils.time import parse_compact_duration

MAX_WARN_THRESHOLD = 100


class EscalationConfig(BaseModel):
    """Typed per-community escalation policy."""

    model_config = ConfigDict(frozen=True)

    community_id: int
    enabled: bool = DEFAULT_ENABLED
    warn_threshold: int = Field(default=DEFAULT_WARN_THRESHOLD, ge=1, le=MAX_WARN_THRESHOLD)
    warn_window: timedelta = timedelta(seconds=DEFAULT_WARN_WINDOW_SECONDS)
    timeout_window: timedelta = timedelta(seconds=DEFAULT_TIMEOUT_WINDOW_SECONDS)

    @field_validator("warn_window", "timeout_window")
    @classmethod
    def _positive_window(cls, value: timedelta) -> timedelta:
        if value.total_seconds() < 1:
            raise ValueError("window must be at least one second")
        if value % timedelta(seconds=1):
            raise ValueError("window must be a whole number of seconds")
        return value

    @classmethod
    def defaults(cls, community_id: int) -> EscalationConfig:
        return cls(community_id=community_id)


class EscalationConfigUpdate(BaseModel):
    """Partial update applied on top of the stored policy.

    Windows accept seconds, ISO 8601 durations or compact strings such as ``24h``.
    """

    enabled: bool | None = None
    warn_threshold: int | None = Field(default=None, ge=1, le=MAX_WARN_THRESHOLD)
    warn_window: timedelta | None = None
    timeout_window: timedelta | None = None

    @field_validator("warn_window", "timeout_window", mode="before")
    @classmethod
    def _parse_compact(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.upper().startswith("P"):
            parsed = parse_compact_duration(value)
            if parsed is None:
                raise ValueError(f"invalid duration `{value}`")
            return parsed
        return value

    def apply(self, current: EscalationConfig) -> EscalationConfig:
        """Return ``current`` with the provided fields replaced."""
        changes = self.model_dump(exclude_none=True)
        return EscalationConfig.model_validate({**current.model_dump(), **changes})


class EscalationConfigResponse(BaseModel):
    """Policy as returned by the HTTP surface, with windows in seconds."""

    community_id: int
    enabled: bool
    warn_threshold: int
    warn_window_seconds: int
    timeout_window_seconds: int

    @classmethod
    def from_config(cls, config: EscalationConfig) -> EscalationConfigResponse:
        return cls(
            community_id=config.community_id,
            enabled=config.enabled,
            warn_threshold=config.warn_threshold,
            warn_window_seconds=int(config.warn_window.total_seconds()),
            timeout_window_seconds=int(config.timeout_window.total_seconds()),
        )
