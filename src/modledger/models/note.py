"""Free-form moderator notes about a community member."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from modledger.db.session import Base
from modledger.db.time import utcnow
from modledger.models.case import CaseId

NOTE_MAX_LENGTH = 2000


class UserNote(Base):
    """A note about a user. Deleting a note only stamps ``deleted_at``."""

    __tablename__ = "user_note"

    id: Mapped[int] = mapped_column(CaseId, primary_key=True, autoincrement=True)
    community_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    target_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    author_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


Index(
    "ix_user_note_community_target_created",
    UserNote.community_id,
    UserNote.target_user_id,
    UserNote.created_at.desc(),
)
