"""
Ledger and blocklist tables.

Key design decisions:
- Ledger rows are append-only; `id` order is the only ordering used
  (newest-first retrieval), `created_at` is informational
- `blocked` is captured when the row is written, never updated afterwards
- Composite index on (channel_id, change_type, id) serves the hot query:
  "newest N `add` rows for this channel"
- One blocklist row per (channel_id, emote_id)
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Index, Integer, String, UniqueConstraint

from app.db.base import Base, TimestampMixin


class LedgerEntryRecord(Base, TimestampMixin):
    __tablename__ = "emote_ledger"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(String(64), nullable=False)
    emote_id = Column(String(64), nullable=False)
    change_type = Column(String(32), nullable=False)
    blocked = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(
            "change_type IN ('add', 'removed_previous', 'removed_random', 'removed_blocked')",
            name="check_ledger_change_type",
        ),
        Index("ix_emote_ledger_channel_type_id", "channel_id", "change_type", "id"),
        Index("ix_emote_ledger_channel_id", "channel_id", "id"),
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry(id={self.id}, channel={self.channel_id}, emote={self.emote_id}, type={self.change_type})>"


class BlockedItemRecord(Base, TimestampMixin):
    __tablename__ = "emote_blocklist"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(String(64), nullable=False)
    emote_id = Column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("channel_id", "emote_id", name="uq_blocklist_channel_emote"),
    )

    def __repr__(self) -> str:
        return f"<BlockedItem(channel={self.channel_id}, emote={self.emote_id})>"
