"""
Notifier interface: tells the channel's chat what happened and reports the
redemption status back to the platform it came from.
"""

from abc import ABC, abstractmethod

from app.services.interfaces.types import RedemptionRef


class Notifier(ABC):

    @abstractmethod
    async def report(self, channel: str, message: str) -> None:
        ...

    @abstractmethod
    async def set_upstream_status(self, ref: RedemptionRef, success: bool) -> None:
        ...

    async def close(self) -> None:
        pass
