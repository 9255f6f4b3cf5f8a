"""
Ledger interface: per-channel history of committed emote changes and the
per-channel blocklist.
"""

from abc import ABC, abstractmethod

from app.services.interfaces.types import ChangeType, LedgerEntry


class Ledger(ABC):

    @abstractmethod
    async def recent_adds(self, channel_id: str, limit: int) -> list[LedgerEntry]:
        """Newest `limit` ADD entries for the channel, newest first."""

    @abstractmethod
    async def append(self, channel_id: str, item_id: str, change_type: ChangeType) -> LedgerEntry:
        """
        Record a committed change. `blocked` is taken from the blocklist at
        the time of writing.
        """

    @abstractmethod
    async def is_blocked(self, channel_id: str, item_id: str) -> bool:
        ...

    @abstractmethod
    async def blocked_ids(self, channel_id: str) -> set[str]:
        ...

    @abstractmethod
    async def block(self, channel_id: str, item_id: str) -> bool:
        """Add to blocklist. Returns False if it was already blocked."""

    @abstractmethod
    async def unblock(self, channel_id: str, item_id: str) -> bool:
        """Remove from blocklist. Returns False if it was not blocked."""

    @abstractmethod
    async def history(
        self,
        channel_id: str,
        page: int = 1,
        page_size: int = 20,
        added_only: bool = False,
    ) -> list[LedgerEntry]:
        """Paginated newest-first listing."""
