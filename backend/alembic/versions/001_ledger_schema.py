"""Ledger schema: emote change history and per-channel blocklist.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "emote_ledger",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("channel_id", sa.String(64), nullable=False),
        sa.Column("emote_id", sa.String(64), nullable=False),
        sa.Column("change_type", sa.String(32), nullable=False),
        sa.Column("blocked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "change_type IN ('add', 'removed_previous', 'removed_random', 'removed_blocked')",
            name="check_ledger_change_type",
        ),
    )
    # Rotation window query: newest N 'add' rows of one channel.
    # Without it every redemption scans the channel's whole history.
    op.create_index("ix_emote_ledger_channel_type_id", "emote_ledger", ["channel_id", "change_type", "id"])
    # History listing, newest first
    op.create_index("ix_emote_ledger_channel_id", "emote_ledger", ["channel_id", "id"])

    op.create_table(
        "emote_blocklist",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("channel_id", sa.String(64), nullable=False),
        sa.Column("emote_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("channel_id", "emote_id", name="uq_blocklist_channel_emote"),
    )


def downgrade() -> None:
    op.drop_table("emote_blocklist")
    op.drop_index("ix_emote_ledger_channel_id", table_name="emote_ledger")
    op.drop_index("ix_emote_ledger_channel_type_id", table_name="emote_ledger")
    op.drop_table("emote_ledger")
