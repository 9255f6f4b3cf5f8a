"""
Ledger implementations.

SqlLedger is the production store (one short session per operation).
InMemoryLedger backs tests and local runs without a database.
"""

import itertools
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger
from app.models.ledger import BlockedItemRecord, LedgerEntryRecord
from app.services.interfaces.ledger import Ledger
from app.services.interfaces.types import ChangeType, LedgerEntry

logger = get_logger(__name__)


def _to_entry(record: LedgerEntryRecord) -> LedgerEntry:
    return LedgerEntry(
        id=record.id,
        channel_id=record.channel_id,
        item_id=record.emote_id,
        change_type=ChangeType(record.change_type),
        blocked=record.blocked,
        created_at=record.created_at,
    )


class SqlLedger(Ledger):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def recent_adds(self, channel_id: str, limit: int) -> list[LedgerEntry]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(LedgerEntryRecord)
                .where(
                    LedgerEntryRecord.channel_id == channel_id,
                    LedgerEntryRecord.change_type == ChangeType.ADD.value,
                )
                .order_by(LedgerEntryRecord.id.desc())
                .limit(limit)
            )
            return [_to_entry(r) for r in result.scalars().all()]

    async def append(self, channel_id: str, item_id: str, change_type: ChangeType) -> LedgerEntry:
        async with self.session_factory() as session:
            async with session.begin():
                blocked = await self._is_blocked(session, channel_id, item_id)
                record = LedgerEntryRecord(
                    channel_id=channel_id,
                    emote_id=item_id,
                    change_type=change_type.value,
                    blocked=blocked,
                )
                session.add(record)
                await session.flush()
                await session.refresh(record)
            logger.info(
                "ledger_appended",
                entry_id=record.id,
                emote_id=item_id,
                change_type=change_type.value,
                blocked=blocked,
            )
            return _to_entry(record)

    async def is_blocked(self, channel_id: str, item_id: str) -> bool:
        async with self.session_factory() as session:
            return await self._is_blocked(session, channel_id, item_id)

    @staticmethod
    async def _is_blocked(session: AsyncSession, channel_id: str, item_id: str) -> bool:
        result = await session.execute(
            select(BlockedItemRecord.id).where(
                BlockedItemRecord.channel_id == channel_id,
                BlockedItemRecord.emote_id == item_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def blocked_ids(self, channel_id: str) -> set[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(BlockedItemRecord.emote_id).where(BlockedItemRecord.channel_id == channel_id)
            )
            return set(result.scalars().all())

    async def block(self, channel_id: str, item_id: str) -> bool:
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    session.add(BlockedItemRecord(channel_id=channel_id, emote_id=item_id))
            except IntegrityError:
                return False
        logger.info("emote_blocked", emote_id=item_id)
        return True

    async def unblock(self, channel_id: str, item_id: str) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(BlockedItemRecord).where(
                        BlockedItemRecord.channel_id == channel_id,
                        BlockedItemRecord.emote_id == item_id,
                    )
                )
        removed = result.rowcount > 0
        if removed:
            logger.info("emote_unblocked", emote_id=item_id)
        return removed

    async def history(
        self,
        channel_id: str,
        page: int = 1,
        page_size: int = 20,
        added_only: bool = False,
    ) -> list[LedgerEntry]:
        query = select(LedgerEntryRecord).where(LedgerEntryRecord.channel_id == channel_id)
        if added_only:
            query = query.where(LedgerEntryRecord.change_type == ChangeType.ADD.value)
        query = (
            query
            .order_by(LedgerEntryRecord.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [_to_entry(r) for r in result.scalars().all()]


class InMemoryLedger(Ledger):
    """Process-local ledger. Insertion order is the entry order."""

    def __init__(self):
        self._entries: list[LedgerEntry] = []
        self._blocked: dict[str, set[str]] = {}
        self._ids = itertools.count(1)

    def entries(self, channel_id: str) -> list[LedgerEntry]:
        """All entries of a channel, oldest first."""
        return [e for e in self._entries if e.channel_id == channel_id]

    async def recent_adds(self, channel_id: str, limit: int) -> list[LedgerEntry]:
        adds = [e for e in reversed(self._entries) if e.channel_id == channel_id and e.change_type is ChangeType.ADD]
        return adds[:limit]

    async def append(self, channel_id: str, item_id: str, change_type: ChangeType) -> LedgerEntry:
        entry = LedgerEntry(
            id=next(self._ids),
            channel_id=channel_id,
            item_id=item_id,
            change_type=change_type,
            blocked=item_id in self._blocked.get(channel_id, set()),
            created_at=datetime.now(timezone.utc),
        )
        self._entries.append(entry)
        return entry

    async def is_blocked(self, channel_id: str, item_id: str) -> bool:
        return item_id in self._blocked.get(channel_id, set())

    async def blocked_ids(self, channel_id: str) -> set[str]:
        return set(self._blocked.get(channel_id, set()))

    async def block(self, channel_id: str, item_id: str) -> bool:
        blocked = self._blocked.setdefault(channel_id, set())
        if item_id in blocked:
            return False
        blocked.add(item_id)
        return True

    async def unblock(self, channel_id: str, item_id: str) -> bool:
        blocked = self._blocked.get(channel_id, set())
        if item_id not in blocked:
            return False
        blocked.discard(item_id)
        return True

    async def history(
        self,
        channel_id: str,
        page: int = 1,
        page_size: int = 20,
        added_only: bool = False,
    ) -> list[LedgerEntry]:
        entries = [
            e for e in reversed(self._entries)
            if e.channel_id == channel_id and (not added_only or e.change_type is ChangeType.ADD)
        ]
        start = (page - 1) * page_size
        return entries[start:start + page_size]
