"""
Pytest fixtures: in-memory emote provider, recording notifier, ledgers,
engine/orchestrator wiring and an HTTP client against the app.

The fake provider enforces slot capacity the way the real one does, so
an install into a full channel fails. Every call yields to the event loop
first, which lets concurrent redemptions interleave.
"""

import asyncio
import random
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from app.main import app
from app.api.dependencies import get_orchestrator
from app.core.errors import ItemNotFound, ResourceClientError
from app.db.base import Base
from app.db.session import create_engine, create_session_factory
from app.services.admission_service import AdmissionEngine
from app.services.interfaces.notifier import Notifier
from app.services.interfaces.resource_client import ResourceClient
from app.services.interfaces.types import PoolItem, PoolSnapshot, RedemptionRef
from app.services.ledger_service import InMemoryLedger, SqlLedger
from app.services.redemption_service import Redemption, RedemptionOrchestrator
from app.services.tenant_lock import LocalTenantLocks

CHANNEL = "22484632"
EMOTE_URL_PATTERN = r"https?://7tv\.app/emotes/(\w+)"
INTERNAL_USER_ID = "77829817"

CATALOG = {
    "A": "peepoHappy",
    "B": "catJAM",
    "C": "KEKW",
    "D": "Pog",
    "E": "monkaS",
    "A2": "peepoHappy",  # different id, same code as A
}


class FakeEmoteProvider(ResourceClient):
    def __init__(self, catalog: dict[str, str]):
        self.catalog = dict(catalog)
        self.pools: dict[str, list[PoolItem]] = {}
        self.capacity: dict[str, int] = {}
        self.calls: list[tuple[str, ...]] = []
        self.failures: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.echo = True
        self.max_seen: dict[str, int] = {}

    def set_pool(self, channel_id: str, capacity: int, item_ids: list[str]) -> None:
        self.capacity[channel_id] = capacity
        self.pools[channel_id] = [PoolItem(i, self.catalog[i]) for i in item_ids]

    def installed(self, channel_id: str) -> list[str]:
        return [i.id for i in self.pools.get(channel_id, [])]

    @property
    def mutations(self) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[0] in ("evict", "install")]

    async def _step(self, operation: str, *args: str) -> None:
        self.calls.append((operation, *args))
        await asyncio.sleep(self.delays.get(operation, 0))
        if operation in self.failures:
            raise self.failures[operation]

    async def fetch_pool(self, channel_id: str) -> PoolSnapshot:
        await self._step("fetch_pool", channel_id)
        return PoolSnapshot(
            channel_id=channel_id,
            capacity=self.capacity.get(channel_id, 0),
            items=tuple(self.pools.get(channel_id, [])),
        )

    async def fetch_item(self, item_id: str) -> PoolItem:
        await self._step("fetch_item", item_id)
        if item_id not in self.catalog:
            raise ItemNotFound(item_id)
        return PoolItem(item_id, self.catalog[item_id])

    async def evict(self, channel_id: str, item_id: str) -> Optional[PoolItem]:
        await self._step("evict", channel_id, item_id)
        pool = self.pools.setdefault(channel_id, [])
        for item in pool:
            if item.id == item_id:
                pool.remove(item)
                return item if self.echo else None
        raise ResourceClientError(f"emote {item_id} is not installed", status_code=404)

    async def install(self, channel_id: str, item_id: str) -> Optional[PoolItem]:
        await self._step("install", channel_id, item_id)
        pool = self.pools.setdefault(channel_id, [])
        if len(pool) >= self.capacity.get(channel_id, 0):
            raise ResourceClientError("emote slots full", status_code=400)
        item = PoolItem(item_id, self.catalog[item_id])
        pool.append(item)
        self.max_seen[channel_id] = max(self.max_seen.get(channel_id, 0), len(pool))
        return item if self.echo else None


class RecordingNotifier(Notifier):
    def __init__(self):
        self.messages: list[tuple[str, str]] = []
        self.statuses: list[tuple[RedemptionRef, bool]] = []

    async def report(self, channel: str, message: str) -> None:
        self.messages.append((channel, message))

    async def set_upstream_status(self, ref: RedemptionRef, success: bool) -> None:
        self.statuses.append((ref, success))


def make_redemption(emote_id: Optional[str] = None, **overrides) -> Redemption:
    fields = dict(
        channel_id=CHANNEL,
        channel_login="gempir",
        user_id="1234",
        user_name="viewer",
        redemption_id="r-1",
        reward_id="reward-1",
        emote_id=emote_id,
        slots=1,
    )
    fields.update(overrides)
    return Redemption(**fields)


@pytest.fixture
def provider() -> FakeEmoteProvider:
    return FakeEmoteProvider(CATALOG)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def locks() -> LocalTenantLocks:
    return LocalTenantLocks()


@pytest.fixture
def engine(provider, ledger) -> AdmissionEngine:
    return AdmissionEngine(provider, ledger, rng=random.Random(7), call_timeout=1.0)


@pytest.fixture
def orchestrator(engine, ledger, locks, notifier) -> RedemptionOrchestrator:
    return RedemptionOrchestrator(
        engine=engine,
        ledger=ledger,
        locks=locks,
        notifier=notifier,
        emote_url_pattern=EMOTE_URL_PATTERN,
        internal_requester_id=INTERNAL_USER_ID,
        lock_timeout=1.0,
    )


@pytest_asyncio.fixture
async def sql_ledger(tmp_path) -> AsyncGenerator[SqlLedger, None]:
    """SqlLedger on a throwaway SQLite file; tables created per test."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield SqlLedger(create_session_factory(engine))

    await engine.dispose()


@pytest_asyncio.fixture
async def client(orchestrator) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the orchestrator dependency pointed at the fakes."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
