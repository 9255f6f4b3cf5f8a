"""
HTTP client for the emote provider.

Provider contract (bearer token auth):
  GET    /users/{channel_id}                   -> {"emote_slots": int, "emotes": [{"id", "name"}]}
  GET    /emotes/{emote_id}                    -> {"id", "name"}     (404: unknown emote)
  PUT    /users/{channel_id}/emotes/{emote_id} -> optional {"id", "name"}
  DELETE /users/{channel_id}/emotes/{emote_id} -> optional {"id", "name"}

Transport errors and non-2xx responses raise ResourceClientError; timeouts
raise ResourceTimeout. The engine decides what they mean for a redemption.
"""

from typing import Any, Optional

import httpx

from app.core.errors import ItemNotFound, ResourceClientError, ResourceTimeout
from app.core.logging import get_logger
from app.services.interfaces.resource_client import ResourceClient
from app.services.interfaces.types import PoolItem, PoolSnapshot

logger = get_logger(__name__)


class EmoteProviderClient(ResourceClient):
    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, path: str) -> httpx.Response:
        try:
            response = await self.client.request(method, path)
        except httpx.TimeoutException as e:
            raise ResourceTimeout(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise ResourceClientError(f"{method} {path}: {e}") from e

        logger.debug("provider_response", method=method, path=path, status_code=response.status_code)
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        raise ResourceClientError(
            f"Bad provider response: {response.status_code}",
            status_code=response.status_code,
        )

    @staticmethod
    def _parse_item(data: Any) -> Optional[PoolItem]:
        if not isinstance(data, dict) or "id" not in data:
            return None
        return PoolItem(id=str(data["id"]), name=str(data.get("name", "")))

    async def fetch_pool(self, channel_id: str) -> PoolSnapshot:
        response = await self._request("GET", f"/users/{channel_id}")
        self._raise_for_status(response)
        try:
            data = response.json()
            items = tuple(
                PoolItem(id=str(e["id"]), name=str(e["name"]))
                for e in data.get("emotes") or []
            )
            capacity = int(data["emote_slots"])
        except (ValueError, KeyError, TypeError) as e:
            raise ResourceClientError(f"Malformed pool response for {channel_id}: {e}") from e

        # Duplicate detection and eviction targeting both assume ids and codes are unique
        for field in ("id", "name"):
            values = [getattr(item, field) for item in items]
            if len(set(values)) != len(values):
                logger.warning("pool_duplicates", channel_id=channel_id, field=field)
                raise ResourceClientError(f"Malformed pool response for {channel_id}: duplicate emote {field}")

        return PoolSnapshot(channel_id=channel_id, capacity=capacity, items=items)

    async def fetch_item(self, item_id: str) -> PoolItem:
        response = await self._request("GET", f"/emotes/{item_id}")
        if response.status_code in (400, 404):
            raise ItemNotFound(item_id)
        self._raise_for_status(response)
        try:
            item = self._parse_item(response.json())
        except ValueError as e:
            raise ResourceClientError(f"Malformed emote response for {item_id}: {e}") from e
        if item is None:
            raise ItemNotFound(item_id)
        return item

    async def _mutate(self, method: str, channel_id: str, item_id: str) -> Optional[PoolItem]:
        response = await self._request(method, f"/users/{channel_id}/emotes/{item_id}")
        self._raise_for_status(response)
        if not response.content:
            return None
        try:
            return self._parse_item(response.json())
        except ValueError:
            return None

    async def evict(self, channel_id: str, item_id: str) -> Optional[PoolItem]:
        return await self._mutate("DELETE", channel_id, item_id)

    async def install(self, channel_id: str, item_id: str) -> Optional[PoolItem]:
        return await self._mutate("PUT", channel_id, item_id)
