"""Data access helpers for per-community escalation policy."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from modledger.models.escalation import EscalationConfigRow
from modledger.schemas.escalation import EscalationConfig

__all__ = ["EscalationConfigRepository"]


class EscalationConfigRepository:
    """Thin wrapper around the ``escalation_config`` table."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get_or_create(self, community_id: int) -> EscalationConfigRow:
        """Return the community's row, inserting defaults on first access.

        Concurrent first accesses race on the primary key; the loser's insert is
        discarded by ``ON CONFLICT DO NOTHING`` and both read the same row.
        """
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(EscalationConfigRow).values(community_id=community_id)
            self.session.execute(stmt.on_conflict_do_nothing(index_elements=["community_id"]))
        elif dialect == "sqlite":
            stmt = sqlite.insert(EscalationConfigRow).values(community_id=community_id)
            self.session.execute(stmt.on_conflict_do_nothing(index_elements=["community_id"]))
        elif self.session.get(EscalationConfigRow, community_id) is None:
            self.session.add(EscalationConfigRow(community_id=community_id))
            self.session.flush()

        row = self.session.execute(
            select(EscalationConfigRow)
            .where(EscalationConfigRow.community_id == community_id)
            .execution_options(populate_existing=True)
        ).scalar_one()
        return row

    def save(self, config: EscalationConfig) -> EscalationConfigRow:
        """Overwrite the community's policy with ``config``."""
        row = self.get_or_create(config.community_id)
        row.enabled = config.enabled
        row.warn_threshold = config.warn_threshold
        row.warn_window_seconds = int(config.warn_window.total_seconds())
        row.timeout_window_seconds = int(config.timeout_window.total_seconds())
        self.session.flush()
        return row

    @staticmethod
    def to_config(row: EscalationConfigRow) -> EscalationConfig:
        """Convert a row into the typed policy record."""
        return EscalationConfig.model_validate(
            {
                "community_id": row.community_id,
                "enabled": row.enabled,
                "warn_threshold": row.warn_threshold,
                "warn_window": row.warn_window_seconds,
                "timeout_window": row.timeout_window_seconds,
            }
        )
