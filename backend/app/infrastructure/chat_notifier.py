"""
Notifier backed by two HTTP endpoints: a chat relay that posts messages
into a channel's chat, and the platform endpoint that marks a redemption
fulfilled or canceled.

Delivery is best effort. A failed notification is logged and counted but
never changes the outcome of the redemption it describes.
"""

from typing import Optional

import httpx

from app.core.logging import get_logger
from app.core.metrics import record_notifier_error
from app.services.interfaces.notifier import Notifier
from app.services.interfaces.types import RedemptionRef

logger = get_logger(__name__)


class ChatNotifier(Notifier):
    def __init__(
        self,
        chat_url: str,
        status_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.chat_url = chat_url
        self.status_url = status_url
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self.client.aclose()

    async def report(self, channel: str, message: str) -> None:
        if not self.chat_url:
            logger.info("chat_message", channel=channel, message=message)
            return
        try:
            response = await self.client.post(self.chat_url, json={"channel": channel, "message": message})
            response.raise_for_status()
        except httpx.HTTPError as e:
            record_notifier_error("chat")
            logger.error("chat_report_failed", channel=channel, error=str(e))

    async def set_upstream_status(self, ref: RedemptionRef, success: bool) -> None:
        status = "FULFILLED" if success else "CANCELED"
        if not self.status_url:
            logger.info("upstream_status_skipped", redemption_id=ref.redemption_id, status=status)
            return
        try:
            response = await self.client.patch(
                self.status_url,
                json={
                    "broadcaster_id": ref.channel_id,
                    "reward_id": ref.reward_id,
                    "redemption_id": ref.redemption_id,
                    "status": status,
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            record_notifier_error("upstream")
            logger.error("upstream_status_failed", redemption_id=ref.redemption_id, error=str(e))
            return
        logger.info("upstream_status_updated", redemption_id=ref.redemption_id, status=status)
