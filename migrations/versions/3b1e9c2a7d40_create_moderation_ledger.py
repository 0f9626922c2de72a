"""create moderation ledger

Revision ID: 3b1e9c2a7d40
Revises:
Create Date: 2026-10-18 09:12:44.318201

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3b1e9c2a7d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CaseId = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    """Create warnings, cases, case events, escalation policy and user notes."""
    op.create_table(
        "warning",
        sa.Column("id", CaseId, autoincrement=True, nullable=False),
        sa.Column("community_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("moderator_id", sa.BigInteger(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("warned_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_warning_community_user_warned_at",
        "warning",
        ["community_id", "user_id", sa.text("warned_at DESC")],
    )

    op.create_table(
        "moderation_case",
        sa.Column("id", CaseId, autoincrement=True, nullable=False),
        sa.Column("community_id", sa.BigInteger(), nullable=False),
        sa.Column("case_number", sa.BigInteger(), nullable=False),
        sa.Column("case_code", sa.String(length=4), nullable=False),
        sa.Column("action_case_number", sa.BigInteger(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("target_user_id", sa.BigInteger(), nullable=False),
        sa.Column("actor_id", sa.BigInteger(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("duration_seconds", sa.BigInteger(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reversed_by", sa.BigInteger(), nullable=True),
        sa.Column("reversed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("source_warning_id", CaseId, nullable=True),
        sa.Column("escalation_anchor_id", CaseId, nullable=True),
        sa.CheckConstraint(
            "kind != 'auto_timeout' OR source_warning_id IS NOT NULL",
            name="ck_moderation_case_auto_timeout_source",
        ),
        sa.ForeignKeyConstraint(["source_warning_id"], ["warning.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_moderation_case_community_id_desc",
        "moderation_case",
        ["community_id", sa.text("id DESC")],
    )
    op.create_index(
        "ix_moderation_case_community_target",
        "moderation_case",
        ["community_id", "target_user_id"],
    )
    op.create_index(
        "uq_moderation_case_number",
        "moderation_case",
        ["community_id", "case_number"],
        unique=True,
    )
    op.create_index(
        "uq_moderation_case_label",
        "moderation_case",
        ["community_id", "case_code", "action_case_number"],
        unique=True,
    )
    op.create_index(
        "uq_moderation_case_escalation_anchor",
        "moderation_case",
        ["community_id", "target_user_id", "escalation_anchor_id"],
        unique=True,
    )

    op.create_table(
        "case_event",
        sa.Column("id", CaseId, autoincrement=True, nullable=False),
        sa.Column("case_id", CaseId, nullable=False),
        sa.Column("community_id", sa.BigInteger(), nullable=False),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("actor_id", sa.BigInteger(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("old_reason", sa.Text(), nullable=True),
        sa.Column("new_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["moderation_case.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_case_event_case_id", "case_event", ["case_id", "id"])

    op.create_table(
        "escalation_config",
        sa.Column("community_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("enabled", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("warn_threshold", sa.Integer(), server_default="3", nullable=False),
        sa.Column("warn_window_seconds", sa.BigInteger(), server_default="86400", nullable=False),
        sa.Column(
            "timeout_window_seconds", sa.BigInteger(), server_default="604800", nullable=False
        ),
        sa.CheckConstraint("warn_threshold >= 1", name="ck_escalation_config_threshold"),
        sa.PrimaryKeyConstraint("community_id"),
    )

    op.create_table(
        "user_note",
        sa.Column("id", CaseId, autoincrement=True, nullable=False),
        sa.Column("community_id", sa.BigInteger(), nullable=False),
        sa.Column("target_user_id", sa.BigInteger(), nullable=False),
        sa.Column("author_id", sa.BigInteger(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_user_note_community_target_created",
        "user_note",
        ["community_id", "target_user_id", sa.text("created_at DESC")],
    )


def downgrade() -> None:
    """Drop the moderation ledger tables."""
    op.drop_index("ix_user_note_community_target_created", table_name="user_note")
    op.drop_table("user_note")
    op.drop_table("escalation_config")
    op.drop_index("ix_case_event_case_id", table_name="case_event")
    op.drop_table("case_event")
    op.drop_index("uq_moderation_case_escalation_anchor", table_name="moderation_case")
    op.drop_index("uq_moderation_case_label", table_name="moderation_case")
    op.drop_index("uq_moderation_case_number", table_name="moderation_case")
    op.drop_index("ix_moderation_case_community_target", table_name="moderation_case")
    op.drop_index("ix_moderation_case_community_id_desc", table_name="moderation_case")
    op.drop_table("moderation_case")
    op.drop_index("ix_warning_community_user_warned_at", table_name="warning")
    op.drop_table("warning")
