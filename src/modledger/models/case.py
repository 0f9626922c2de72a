# src/modledger/models/case.py
"""Models tracking moderation cases and their audit trail."""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from modledger.db.session import Base
from modledger.db.time import utcnow
from modledger.utils.labels import format_case_label

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
CaseId = BigInteger().with_variant(Integer, "sqlite")


class CaseKind(str, Enum):
    """Disciplinary action recorded by a case."""

    BAN = "ban"
    KICK = "kick"
    TIMEOUT = "timeout"
    WARN = "warn"
    AUTO_TIMEOUT = "auto_timeout"


class CaseStatus(str, Enum):
    """Lifecycle state of a case. Reversed and expired are terminal."""

    ACTIVE = "active"
    REVERSED = "reversed"
    EXPIRED = "expired"


class CaseEventType(str, Enum):
    """Entries written to the case audit trail."""

    CREATED = "created"
    REVERSED = "reversed"
    EXPIRED = "expired"
    NOTE_ADDED = "note_added"
    REASON_UPDATED = "reason_updated"


# Kinds that carry a duration and may expire.
BOUNDED_KINDS = frozenset({CaseKind.TIMEOUT.value, CaseKind.AUTO_TIMEOUT.value})

# Label prefix per kind; each prefix numbers its cases separately within a community.
CASE_CODES: dict[CaseKind, str] = {
    CaseKind.BAN: "B",
    CaseKind.KICK: "K",
    CaseKind.TIMEOUT: "T",
    CaseKind.WARN: "W",
    CaseKind.AUTO_TIMEOUT: "AT",
}


class ModerationCase(Base):
    """A single moderation action and its lifecycle."""

    __tablename__ = "moderation_case"
    __table_args__ = (
        Index("ix_moderation_case_community_target", "community_id", "target_user_id"),
        Index("uq_moderation_case_number", "community_id", "case_number", unique=True),
        Index(
            "uq_moderation_case_label",
            "community_id",
            "case_code",
            "action_case_number",
            unique=True,
        ),
        # One automatic escalation per warning burst; NULL anchors never collide.
        Index(
            "uq_moderation_case_escalation_anchor",
            "community_id",
            "target_user_id",
            "escalation_anchor_id",
            unique=True,
        ),
        CheckConstraint(
            "kind != 'auto_timeout' OR source_warning_id IS NOT NULL",
            name="ck_moderation_case_auto_timeout_source",
        ),
    )

    id: Mapped[int] = mapped_column(CaseId, primary_key=True, autoincrement=True)
    community_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Per-community sequence, plus a per-code sequence that forms labels such as `W3`.
    case_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    case_code: Mapped[str] = mapped_column(String(4), nullable=False)
    action_case_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    target_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Moderator id, or the configured system actor for automatic escalations.
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=CaseStatus.ACTIVE.value
    )
    duration_seconds: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    reversed_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_warning_id: Mapped[int | None] = mapped_column(
        CaseId,
        ForeignKey("warning.id"),
        nullable=True,
    )
    # Oldest warning of the counted window at escalation time.
    escalation_anchor_id: Mapped[int | None] = mapped_column(CaseId, nullable=True)

    @property
    def label(self) -> str:
        return format_case_label(self.case_code, self.action_case_number)


Index(
    "ix_moderation_case_community_id_desc",
    ModerationCase.community_id,
    ModerationCase.id.desc(),
)


class CaseEvent(Base):
    """Append-only audit entry for a case mutation."""

    __tablename__ = "case_event"
    __table_args__ = (Index("ix_case_event_case_id", "case_id", "id"),)

    id: Mapped[int] = mapped_column(CaseId, primary_key=True, autoincrement=True)
    case_id: Mapped[int] = mapped_column(
        CaseId,
        ForeignKey("moderation_case.id", ondelete="CASCADE"),
        nullable=False,
    )
    community_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    old_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
