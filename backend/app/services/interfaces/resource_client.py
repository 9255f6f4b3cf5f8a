"""
Emote provider interface.
The provider is the only source of truth for what a channel has installed.
"""

from abc import ABC, abstractmethod
from typing import Optional

from app.services.interfaces.types import PoolItem, PoolSnapshot


class ResourceClient(ABC):
    """
    Interface for the external emote provider.

    Implementations:
    - EmoteProviderClient: HTTP client for the real provider
    - tests: in-memory provider that enforces capacity

    Calls are independent network operations. Nothing is atomic across two
    calls, and evict/install are not idempotent on the provider side.
    """

    @abstractmethod
    async def fetch_pool(self, channel_id: str) -> PoolSnapshot:
        """Current emote set and slot capacity of a channel."""

    @abstractmethod
    async def fetch_item(self, item_id: str) -> PoolItem:
        """
        Canonical metadata for an emote.

        Raises:
            ItemNotFound: the id is unknown to the provider
        """

    @abstractmethod
    async def evict(self, channel_id: str, item_id: str) -> Optional[PoolItem]:
        """Remove an emote. Returns the removed emote if the provider echoes it."""

    @abstractmethod
    async def install(self, channel_id: str, item_id: str) -> Optional[PoolItem]:
        """Add an emote. Returns the added emote if the provider echoes it."""

    async def close(self) -> None:
        pass
