"""
Admission engine: decides whether an emote may be installed into a channel
and drives the evict-then-install commit against the emote provider.

EVICTION POLICY
===============

Problem:
  A channel has a fixed number of emote slots on the provider. When a new
  emote is redeemed into a full channel, something has to go.

Policy:
  1. Look at the newest `slots` emotes this service added to the channel
     (the rotation window). Of those, evict the oldest one that is still
     installed, was not blocked when recorded and is not blocked now.
  2. If the window has no usable entry but the channel is full, evict a
     uniformly random installed emote.
  3. If the channel has a free slot, just add.

  The window is our own ledger, not the provider's ordering, which is not
  stable across fetches. `slots` bounds only the window; the real capacity
  always comes from the provider snapshot.

COMMIT
======

  evict(target) -> ledger(removed_*) -> install(item) -> ledger(add)

  The two provider calls are not atomic:
  - evict fails: nothing else happens, the channel is untouched
  - install fails after evict: PartialCommit. The channel is one emote
    short, exactly one ledger row (the eviction) exists. Not compensated;
    callers retry the install half only.
  - a ledger write fails: the provider sequence still runs to the end,
    then LedgerWriteFailed carries the CommitResult.

decide() only reads. commit() is the only place that mutates the provider
or writes to the ledger. Neither retries.
"""

import asyncio
import random
import time
from typing import Awaitable, Optional, TypeVar

from app.core.errors import (
    AdmissionError,
    AdmissionTimeout,
    DuplicateItem,
    ExternalCallFailed,
    InconsistentPoolState,
    ItemBlocked,
    ItemNotFound,
    LedgerWriteFailed,
    PartialCommit,
    ResourceClientError,
    ResourceTimeout,
)
from app.core.logging import get_logger
from app.core.metrics import admission_latency, provider_call_latency, record_commit, record_decision, record_provider_error
from app.services.interfaces.ledger import Ledger
from app.services.interfaces.resource_client import ResourceClient
from app.services.interfaces.types import (
    AdmissionRequest,
    ChangeType,
    CommitResult,
    Decision,
    LedgerEntry,
    PoolItem,
    PoolSnapshot,
)

logger = get_logger(__name__)

T = TypeVar("T")


class AdmissionEngine:
    """
    Args:
        resources: emote provider
        ledger: history + blocklist store
        rng: random source for the fallback eviction (inject a seeded
             random.Random in tests)
        call_timeout: seconds allowed per provider call
    """

    def __init__(
        self,
        resources: ResourceClient,
        ledger: Ledger,
        rng: Optional[random.Random] = None,
        call_timeout: float = 10.0,
    ):
        self.resources = resources
        self.ledger = ledger
        self.rng = rng or random.Random()
        self.call_timeout = call_timeout

    async def decide(self, request: AdmissionRequest) -> Decision:
        """
        Decide a redemption against the channel's current provider state.

        Returns a REJECT decision for blocked, unknown and duplicate emotes.

        Raises:
            InconsistentPoolState: provider reports full with zero emotes
            ExternalCallFailed / AdmissionTimeout: provider fetch failed
        """
        start = time.perf_counter()
        try:
            decision = await self._decide(request)
        finally:
            admission_latency.observe(time.perf_counter() - start)

        if decision.admitted:
            record_decision(True, decision.classification.value)
        else:
            record_decision(False, type(decision.reason).__name__)
        return decision

    async def _decide(self, request: AdmissionRequest) -> Decision:
        channel_id = request.channel_id

        if await self.ledger.is_blocked(channel_id, request.item_id):
            logger.info("admission_rejected", reason="blocked", emote_id=request.item_id)
            return Decision.reject(ItemBlocked(request.item_id))

        snapshot = await self._call("fetch", "fetch_pool", self.resources.fetch_pool(channel_id))
        try:
            item = await self._call("fetch", "fetch_item", self.resources.fetch_item(request.item_id))
        except ItemNotFound as e:
            logger.info("admission_rejected", reason="not_found", emote_id=request.item_id)
            return Decision.reject(e)

        duplicate = snapshot.find_by_name(item.name)
        if duplicate is not None:
            logger.info("admission_rejected", reason="duplicate", emote_id=item.id, name=item.name)
            return Decision.reject(DuplicateItem(item.name), item=item)

        logger.info("pool_state", installed=len(snapshot.items), capacity=snapshot.capacity)

        blocked = await self.ledger.blocked_ids(channel_id)
        for present in snapshot.items:
            if present.id in blocked:
                # Not reconciled here; blocking with eviction is an admin action
                logger.warning("blocked_item_still_present", emote_id=present.id, name=present.name)

        window = await self.ledger.recent_adds(channel_id, request.slots)
        logger.info("rotation_window", entries=len(window), slots=request.slots)

        target = self._select_previous(window, snapshot, blocked)
        if target is not None:
            logger.info("eviction_target_found", emote_id=target, classification="removed_previous")
            return Decision.admit(item, snapshot, target, ChangeType.REMOVED_PREVIOUS)

        if snapshot.is_full:
            if not snapshot.items:
                raise InconsistentPoolState(channel_id, snapshot.capacity)
            choice = self.rng.choice(snapshot.items)
            logger.info(
                "eviction_target_random",
                emote_id=choice.id,
                window_entries=len(window),
                slots=request.slots,
            )
            return Decision.admit(item, snapshot, choice.id, ChangeType.REMOVED_RANDOM)

        return Decision.admit(item, snapshot)

    @staticmethod
    def _select_previous(
        window: list[LedgerEntry],
        snapshot: PoolSnapshot,
        blocked: set[str],
    ) -> Optional[str]:
        """Oldest entry of the newest-first window that can still be evicted."""
        for entry in reversed(window):
            if entry.blocked:
                logger.info("eviction_candidate_skipped", emote_id=entry.item_id, reason="recorded_blocked")
                continue
            if entry.item_id in blocked:
                logger.info("eviction_candidate_skipped", emote_id=entry.item_id, reason="blocklisted")
                continue
            if not snapshot.contains(entry.item_id):
                continue
            return entry.item_id
        return None

    async def commit(self, decision: Decision, request: AdmissionRequest) -> CommitResult:
        """
        Apply an ADMIT decision: evict (if targeted), then install.

        Raises:
            ExternalCallFailed / AdmissionTimeout: nothing was changed, or
                only the eviction was attempted and it failed
            PartialCommit: eviction committed, install failed
            LedgerWriteFailed: provider changes committed, a ledger row is missing
        """
        if not decision.admitted:
            raise decision.reason or AdmissionError("cannot commit a rejected decision")

        channel_id = request.channel_id
        evicted: Optional[PoolItem] = None
        ledger_errors: list[Exception] = []

        if decision.eviction_target:
            target = decision.eviction_target
            try:
                echoed = await self._call("evict", "evict", self.resources.evict(channel_id, target))
            except AdmissionError:
                record_commit("failed")
                logger.warning("eviction_failed", emote_id=target)
                raise
            await self._record(channel_id, target, decision.classification, ledger_errors)
            evicted = echoed or (decision.snapshot.get(target) if decision.snapshot else None)
            logger.info("emote_evicted", emote_id=target, classification=decision.classification.value)

        try:
            installed = await self._call("install", "install", self.resources.install(channel_id, request.item_id))
        except AdmissionError as e:
            if decision.eviction_target:
                record_commit("partial")
                raise PartialCommit(
                    decision.eviction_target,
                    evicted.name if evicted else None,
                    e,
                ) from e
            record_commit("failed")
            raise

        await self._record(channel_id, request.item_id, ChangeType.ADD, ledger_errors)
        logger.info("emote_installed", emote_id=request.item_id)

        result = CommitResult(
            installed=installed or decision.item,
            evicted=evicted,
            evicted_id=decision.eviction_target,
            classification=decision.classification,
        )
        if ledger_errors:
            record_commit("unrecorded")
            raise LedgerWriteFailed(result, ledger_errors[0])
        record_commit("installed")
        return result

    async def _record(
        self,
        channel_id: str,
        item_id: str,
        change_type: ChangeType,
        errors: list[Exception],
    ) -> None:
        """Ledger write that follows a provider mutation. A failure is collected, not raised."""
        try:
            await self.ledger.append(channel_id, item_id, change_type)
        except Exception as e:
            logger.exception("ledger_write_failed", emote_id=item_id, change_type=change_type.value)
            errors.append(e)

    async def remove_blocked(self, channel_id: str, item_id: str) -> bool:
        """
        Evict a blocklisted emote if it is still installed, recording it as
        removed_blocked. Returns whether an eviction happened.
        """
        snapshot = await self._call("fetch", "fetch_pool", self.resources.fetch_pool(channel_id))
        if not snapshot.contains(item_id):
            logger.info("blocked_item_not_installed", emote_id=item_id)
            return False

        await self._call("evict", "evict", self.resources.evict(channel_id, item_id))
        await self.ledger.append(channel_id, item_id, ChangeType.REMOVED_BLOCKED)
        logger.info("blocked_item_evicted", emote_id=item_id)
        return True

    async def _call(self, phase: str, operation: str, call: Awaitable[T]) -> T:
        """Bound a provider call and translate transport errors for `phase`."""
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(call, timeout=self.call_timeout)
        except (asyncio.TimeoutError, ResourceTimeout):
            record_provider_error(operation, timeout=True)
            logger.warning("provider_call_timeout", operation=operation, timeout=self.call_timeout)
            raise AdmissionTimeout(phase, self.call_timeout)
        except ResourceClientError as e:
            record_provider_error(operation, timeout=False)
            logger.warning("provider_call_failed", operation=operation, error=str(e), status_code=e.status_code)
            raise ExternalCallFailed(phase, str(e)) from e
        finally:
            provider_call_latency.labels(operation=operation).observe(time.perf_counter() - start)
