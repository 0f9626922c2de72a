# src/modledger/models/warning.py
"""Immutable warning log used for threshold counting."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from modledger.db.session import Base
from modledger.db.time import utcnow
from modledger.models.case import CaseId


class WarningEntry(Base):
    """One warn action. Rows are never updated or deleted."""

    __tablename__ = "warning"
    id: Mapped[int] = mapped_column(CaseId, primary_key=True, autoincrement=True)
    community_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    moderator_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    warned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


Index(
    "ix_warning_community_user_warned_at",
    WarningEntry.community_id,
    WarningEntry.user_id,
    WarningEntry.warned_at.desc(),
)
