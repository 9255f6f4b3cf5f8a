"""
Component factory.
Configures which lock strategy to use and wires the orchestrator.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, get_settings
from app.infrastructure.chat_notifier import ChatNotifier
from app.infrastructure.emote_client import EmoteProviderClient
from app.infrastructure.redis_client import get_redis
from app.services.admission_service import AdmissionEngine
from app.services.interfaces.tenant_lock import TenantLocks
from app.services.ledger_service import SqlLedger
from app.services.redemption_service import RedemptionOrchestrator
from app.services.tenant_lock import LocalTenantLocks, RedisTenantLocks


async def get_lock_strategy(settings: Optional[Settings] = None) -> TenantLocks:
    """
    Get configured per-channel lock strategy.

    - local: asyncio locks, correct for a single worker process
    - redis: shared locks, for several workers behind one redis

    Selected via TENANT_LOCK_BACKEND.
    """
    settings = settings or get_settings()

    if settings.TENANT_LOCK_BACKEND == "redis":
        return RedisTenantLocks(await get_redis(), expiry=settings.TENANT_LOCK_EXPIRY_SECONDS)
    if settings.TENANT_LOCK_BACKEND != "local":
        raise ValueError(f"Unknown TENANT_LOCK_BACKEND: {settings.TENANT_LOCK_BACKEND}")
    return LocalTenantLocks()


async def build_orchestrator(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Optional[Settings] = None,
) -> RedemptionOrchestrator:
    settings = settings or get_settings()

    ledger = SqlLedger(session_factory)
    engine = AdmissionEngine(
        resources=EmoteProviderClient(
            settings.EMOTE_PROVIDER_URL,
            token=settings.EMOTE_PROVIDER_TOKEN,
            timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
        ),
        ledger=ledger,
        call_timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
    )
    return RedemptionOrchestrator(
        engine=engine,
        ledger=ledger,
        locks=await get_lock_strategy(settings),
        notifier=ChatNotifier(
            settings.CHAT_WEBHOOK_URL,
            settings.UPSTREAM_STATUS_URL,
            timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
        ),
        emote_url_pattern=settings.EMOTE_URL_PATTERN,
        internal_requester_id=settings.INTERNAL_REQUESTER_ID,
        lock_timeout=settings.TENANT_LOCK_TIMEOUT_SECONDS,
    )


async def close_orchestrator(orchestrator: RedemptionOrchestrator) -> None:
    await orchestrator.engine.resources.close()
    await orchestrator.notifier.close()
