"""
Redemption orchestration: the only caller of AdmissionEngine.

  RECEIVED -> DECIDED(admit|reject) -> [EVICTING -> EVICTED] -> INSTALLING
           -> INSTALLED | FAILED                      (REJECTED if rejected)

The channel lock spans decide + commit. A cancellation that arrives before
commit starts aborts cleanly. Once commit has started it runs to completion
with the lock still held, however often the caller is cancelled; the
outcome is reported and only then is the cancellation re-raised.

Redemptions by the internal health-check account are processed normally
but never update the upstream redemption status.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Awaitable, Optional, TypeVar

from app.core.errors import AdmissionError, InvalidEmoteReference, LedgerWriteFailed, PartialCommit
from app.core.logging import bind_redemption_context, get_logger, unbind_redemption_context
from app.core.metrics import record_redemption
from app.services.admission_service import AdmissionEngine
from app.services.interfaces.ledger import Ledger
from app.services.interfaces.notifier import Notifier
from app.services.interfaces.tenant_lock import TenantLocks
from app.services.interfaces.types import (
    AdmissionRequest,
    CommitResult,
    Decision,
    LedgerEntry,
    RedemptionOutcome,
    RedemptionRef,
    RedemptionState,
)

logger = get_logger(__name__)

UNKNOWN = "[unknown]"

T = TypeVar("T")


@dataclass(frozen=True)
class Redemption:
    """An inbound reward redemption asking for an emote."""

    channel_id: str
    channel_login: str
    user_id: str
    user_name: str
    redemption_id: str = ""
    reward_id: str = ""
    emote_id: Optional[str] = None
    user_input: str = ""
    slots: int = 1
    update_status: bool = True


@dataclass(frozen=True)
class BlockResult:
    newly_blocked: bool
    evicted: bool


def parse_emote_id(user_input: str, pattern: str) -> str:
    """Extract the emote id from an emote page link. Exactly one link is accepted."""
    matches = re.findall(pattern, user_input or "")
    if len(matches) == 1 and matches[0]:
        return matches[0]
    raise InvalidEmoteReference(user_input)


def success_message(result: CommitResult, user_name: str) -> str:
    added = result.installed.name if result.installed else UNKNOWN
    if result.evicted_id is None:
        return f"✅ Added new emote {added} redeemed by @{user_name}"
    removed = result.evicted.name if result.evicted else UNKNOWN
    return f"✅ Added new emote {added} redeemed by @{user_name} removed: {removed}"


def failure_message(error: AdmissionError, user_name: str) -> str:
    return f"⚠️ Failed to add emote from @{user_name} error: {error.message}"


async def run_to_completion(aw: Awaitable[T]) -> tuple["asyncio.Future[T]", bool]:
    """
    Run `aw` to the end regardless of how often the caller is cancelled.

    Returns the finished task (call .result() to get the value or the error)
    and whether at least one cancellation was absorbed. A caller that gets
    True must re-raise CancelledError once it is done.
    """
    task = asyncio.ensure_future(aw)
    cancelled = False
    while not task.done():
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            cancelled = True
    return task, cancelled


class RedemptionOrchestrator:
    def __init__(
        self,
        engine: AdmissionEngine,
        ledger: Ledger,
        locks: TenantLocks,
        notifier: Notifier,
        emote_url_pattern: str,
        internal_requester_id: str = "",
        lock_timeout: float = 30.0,
    ):
        self.engine = engine
        self.ledger = ledger
        self.locks = locks
        self.notifier = notifier
        self.emote_url_pattern = emote_url_pattern
        self.internal_requester_id = internal_requester_id
        self.lock_timeout = lock_timeout

    def _request_for(self, redemption: Redemption) -> AdmissionRequest:
        emote_id = redemption.emote_id or parse_emote_id(redemption.user_input, self.emote_url_pattern)
        return AdmissionRequest(
            channel_id=redemption.channel_id,
            item_id=emote_id,
            requested_by=redemption.user_name,
            slots=redemption.slots,
        )

    async def handle(self, redemption: Redemption) -> RedemptionOutcome:
        bind_redemption_context(redemption.channel_id, redemption.redemption_id)
        try:
            outcome = await self._process(redemption)
            if outcome.cancel_deferred:
                # Commit finished for a cancelled caller; the redemption is still reported
                task, _ = await run_to_completion(self._notify(redemption, outcome))
                task.result()
                logger.warning("cancellation_reraised", state=outcome.state.value)
                raise asyncio.CancelledError()
            await self._notify(redemption, outcome)
            return outcome
        finally:
            unbind_redemption_context()

    async def _notify(self, redemption: Redemption, outcome: RedemptionOutcome) -> None:
        await self.notifier.report(redemption.channel_login, outcome.message)
        if self._reports_upstream(redemption):
            await self.notifier.set_upstream_status(
                RedemptionRef(
                    redemption_id=redemption.redemption_id,
                    reward_id=redemption.reward_id,
                    channel_id=redemption.channel_id,
                ),
                outcome.success,
            )

    def _reports_upstream(self, redemption: Redemption) -> bool:
        if redemption.user_id == self.internal_requester_id:
            logger.info("upstream_status_exempt", user_id=redemption.user_id)
            return False
        return redemption.update_status

    async def _process(self, redemption: Redemption) -> RedemptionOutcome:
        history = [RedemptionState.RECEIVED]
        logger.info("redemption_received", user=redemption.user_name, slots=redemption.slots)

        try:
            request = self._request_for(redemption)
        except InvalidEmoteReference as e:
            history.append(RedemptionState.DECIDED)
            return self._rejected(redemption, e, history)

        decision: Optional[Decision] = None
        cancel_deferred = False
        unrecorded: Optional[LedgerWriteFailed] = None
        try:
            async with self.locks.hold(redemption.channel_id, self.lock_timeout):
                decision = await self.engine.decide(request)
                history.append(RedemptionState.DECIDED)
                if not decision.admitted:
                    return self._rejected(redemption, decision.reason, history)
                task, cancel_deferred = await run_to_completion(self.engine.commit(decision, request))
                if cancel_deferred:
                    logger.warning("cancellation_deferred", emote_id=request.item_id)
                try:
                    result = task.result()
                except LedgerWriteFailed as e:
                    unrecorded = e
                    result = e.result
        except PartialCommit as e:
            history += [
                RedemptionState.EVICTING,
                RedemptionState.EVICTED,
                RedemptionState.INSTALLING,
                RedemptionState.FAILED,
            ]
            logger.error(
                "partial_commit",
                evicted_id=e.evicted_id,
                emote_id=request.item_id,
                cause=e.cause.message,
            )
            outcome = self._failed(redemption, e, history)
            outcome.cancel_deferred = cancel_deferred
            return outcome
        except AdmissionError as e:
            if decision is not None and decision.admitted:
                history += self._commit_progress(decision, e)
            history.append(RedemptionState.FAILED)
            logger.warning("redemption_failed", error=e.message, error_type=type(e).__name__)
            outcome = self._failed(redemption, e, history)
            outcome.cancel_deferred = cancel_deferred
            return outcome

        if result.evicted_id:
            history += [RedemptionState.EVICTING, RedemptionState.EVICTED]
        history += [RedemptionState.INSTALLING, RedemptionState.INSTALLED]
        record_redemption(RedemptionState.INSTALLED.value)
        if unrecorded is not None:
            logger.error("redemption_unrecorded", emote_id=request.item_id, cause=str(unrecorded.cause))
        logger.info(
            "redemption_installed",
            emote_id=result.installed.id if result.installed else None,
            evicted_id=result.evicted_id,
            classification=result.classification.value,
        )
        return RedemptionOutcome(
            success=True,
            state=RedemptionState.INSTALLED,
            message=success_message(result, redemption.user_name),
            result=result,
            error=unrecorded,
            history=history,
            cancel_deferred=cancel_deferred,
        )

    @staticmethod
    def _commit_progress(decision: Decision, error: AdmissionError) -> list[RedemptionState]:
        """States a commit passed through before failing with `error`."""
        if decision.eviction_target and getattr(error, "phase", None) == "evict":
            return [RedemptionState.EVICTING]
        return [RedemptionState.INSTALLING]

    def _rejected(self, redemption: Redemption, error: AdmissionError, history: list) -> RedemptionOutcome:
        history.append(RedemptionState.REJECTED)
        record_redemption(RedemptionState.REJECTED.value)
        logger.info("redemption_rejected", reason=error.message, error_type=type(error).__name__)
        return RedemptionOutcome(
            success=False,
            state=RedemptionState.REJECTED,
            message=failure_message(error, redemption.user_name),
            error=error,
            history=history,
        )

    def _failed(self, redemption: Redemption, error: AdmissionError, history: list) -> RedemptionOutcome:
        record_redemption(RedemptionState.FAILED.value)
        return RedemptionOutcome(
            success=False,
            state=RedemptionState.FAILED,
            message=failure_message(error, redemption.user_name),
            error=error,
            history=history,
        )

    async def verify(self, redemption: Redemption) -> Decision:
        """
        Dry-run a redemption before it is accepted. Reads only; a rejection
        is reported to the channel's chat.
        """
        bind_redemption_context(redemption.channel_id, redemption.redemption_id)
        try:
            try:
                decision = await self.engine.decide(self._request_for(redemption))
            except AdmissionError as e:
                decision = Decision.reject(e)
            if not decision.admitted:
                logger.warning("verification_failed", reason=decision.reason.message)
                await self.notifier.report(
                    redemption.channel_login,
                    failure_message(decision.reason, redemption.user_name),
                )
            return decision
        finally:
            unbind_redemption_context()

    async def block_item(self, channel_id: str, item_id: str) -> BlockResult:
        """
        Block an emote for a channel and evict it if it is installed.
        The eviction is recorded as removed_blocked.
        """
        async with self.locks.hold(channel_id, self.lock_timeout):
            newly_blocked = await self.ledger.block(channel_id, item_id)
            evicted = await self.engine.remove_blocked(channel_id, item_id)
        return BlockResult(newly_blocked=newly_blocked, evicted=evicted)

    async def unblock_item(self, channel_id: str, item_id: str) -> bool:
        return await self.ledger.unblock(channel_id, item_id)

    async def history(
        self,
        channel_id: str,
        page: int = 1,
        page_size: int = 20,
        added_only: bool = False,
    ) -> list[LedgerEntry]:
        return await self.ledger.history(channel_id, page, page_size, added_only)
