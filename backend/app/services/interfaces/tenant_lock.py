"""
Per-channel critical section interface.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager


class TenantLocks(ABC):
    """
    Keyed exclusive locks, one key per channel.

    Implementations:
    - LocalTenantLocks: asyncio locks in this process
    - RedisTenantLocks: redis locks shared by workers on one redis

    Holders of different keys never wait on each other.
    """

    @abstractmethod
    def hold(self, channel_id: str, timeout: float) -> AbstractAsyncContextManager[None]:
        """
        Context manager holding the channel's lock.

        Raises:
            AdmissionTimeout: lock not acquired within `timeout` seconds
        """
