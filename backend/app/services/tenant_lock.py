"""
Per-channel serialization for redemptions.

CONCURRENCY STRATEGY
====================

Problem:
  decide() + commit() is read-then-write against a provider we cannot lock.
  Two redemptions for the same channel can both see one free slot and both
  install (overflow), or both pick the same eviction target.

Solution:
  Hold an exclusive lock keyed by channel id for the whole
  decide + commit sequence. Different channels use different keys and
  never wait on each other; there is no global lock.

  - LocalTenantLocks: one asyncio.Lock per channel, reference counted so
    channels without in-flight redemptions do not keep a lock around.
  - RedisTenantLocks: a redis lock per channel with an expiry, for several
    workers sharing one redis. The expiry bounds how long a crashed worker
    can block its channel.

  Both bound the wait; a timeout is reported as AdmissionTimeout("lock").
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.asyncio import Redis
from redis.exceptions import LockError

from app.core.errors import AdmissionTimeout
from app.core.logging import get_logger
from app.core.metrics import tenant_lock_timeouts, tenant_lock_wait
from app.services.interfaces.tenant_lock import TenantLocks

logger = get_logger(__name__)


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class LocalTenantLocks(TenantLocks):
    def __init__(self):
        self._slots: dict[str, _Slot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    @asynccontextmanager
    async def hold(self, channel_id: str, timeout: float) -> AsyncIterator[None]:
        slot = self._slots.get(channel_id)
        if slot is None:
            slot = self._slots[channel_id] = _Slot()
        slot.users += 1

        start = time.perf_counter()
        try:
            try:
                # asyncio.timeout cancels acquire() in place, so a timeout never leaves the lock held
                async with asyncio.timeout(timeout):
                    await slot.lock.acquire()
            except TimeoutError:
                tenant_lock_timeouts.inc()
                logger.warning("tenant_lock_timeout", timeout=timeout)
                raise AdmissionTimeout("lock", timeout)
            tenant_lock_wait.observe(time.perf_counter() - start)

            try:
                yield
            finally:
                slot.lock.release()
        finally:
            slot.users -= 1
            if slot.users == 0:
                self._slots.pop(channel_id, None)


class RedisTenantLocks(TenantLocks):
    KEY_PREFIX = "rotation:lock:"

    def __init__(self, redis: Redis, expiry: float = 120.0):
        self.redis = redis
        self.expiry = expiry

    @asynccontextmanager
    async def hold(self, channel_id: str, timeout: float) -> AsyncIterator[None]:
        lock = self.redis.lock(
            f"{self.KEY_PREFIX}{channel_id}",
            timeout=self.expiry,
            blocking_timeout=timeout,
        )
        start = time.perf_counter()
        if not await lock.acquire():
            tenant_lock_timeouts.inc()
            logger.warning("tenant_lock_timeout", timeout=timeout, backend="redis")
            raise AdmissionTimeout("lock", timeout)
        tenant_lock_wait.observe(time.perf_counter() - start)

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Expired while held; someone else may already own the channel
                logger.error("tenant_lock_lost", error=str(e), expiry=self.expiry)
