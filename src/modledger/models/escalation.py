# src/modledger/models/escalation.py
"""Per-community escalation policy."""

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Integer
from sqlalchemy.orm import Mapped, mapped_column

from modledger.db.session import Base

DEFAULT_ENABLED = False
DEFAULT_WARN_THRESHOLD = 3
DEFAULT_WARN_WINDOW_SECONDS = 86_400  # 24 hours
DEFAULT_TIMEOUT_WINDOW_SECONDS = 604_800  # 7 days


class EscalationConfigRow(Base):
    """One row per community, created lazily with defaults and never deleted."""

    __tablename__ = "escalation_config"
    __table_args__ = (
        CheckConstraint("warn_threshold >= 1", name="ck_escalation_config_threshold"),
    )

    community_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=DEFAULT_ENABLED)
    warn_threshold: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_WARN_THRESHOLD
    )
    warn_window_seconds: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=DEFAULT_WARN_WINDOW_SECONDS
    )
    timeout_window_seconds: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=DEFAULT_TIMEOUT_WINDOW_SECONDS
    )
