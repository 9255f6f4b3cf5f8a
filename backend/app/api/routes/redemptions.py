"""
Redemption endpoints: process a redemption, or dry-run it.

Admission failures are outcomes, not HTTP errors: the response is 200 with
`success: false` and the message that was sent to chat.
"""

from fastapi import APIRouter, Depends

from app.core.config import get_settings
from app.core.logging import get_logger
from app.schemas.redemption import EmoteResponse, RedemptionCreate, RedemptionResponse, VerificationResponse
from app.services.interfaces.types import PoolItem
from app.services.redemption_service import Redemption, RedemptionOrchestrator
from app.api.dependencies import get_orchestrator

logger = get_logger(__name__)
router = APIRouter(prefix="/redemptions", tags=["Redemptions"])


def _to_redemption(data: RedemptionCreate) -> Redemption:
    return Redemption(
        channel_id=data.channel_id,
        channel_login=data.channel_login,
        user_id=data.user_id,
        user_name=data.user_name,
        redemption_id=data.redemption_id,
        reward_id=data.reward_id,
        emote_id=data.emote_id,
        user_input=data.user_input,
        slots=data.slots or get_settings().DEFAULT_SLOTS,
        update_status=data.update_status,
    )


def _emote(item: PoolItem | None) -> EmoteResponse | None:
    return EmoteResponse(id=item.id, name=item.name) if item else None


@router.post("/", response_model=RedemptionResponse)
async def create_redemption(
    data: RedemptionCreate,
    orchestrator: RedemptionOrchestrator = Depends(get_orchestrator),
):
    """
    Install the redeemed emote into the channel, evicting one if the
    channel is full. Redemptions for one channel are processed one at a time.
    """
    outcome = await orchestrator.handle(_to_redemption(data))
    result = outcome.result
    return RedemptionResponse(
        success=outcome.success,
        state=outcome.state.value,
        message=outcome.message,
        classification=result.classification.value if result else None,
        installed=_emote(result.installed) if result else None,
        evicted=_emote(result.evicted) if result else None,
        evicted_id=result.evicted_id if result else None,
        error=type(outcome.error).__name__ if outcome.error else None,
        history=[s.value for s in outcome.history],
    )


@router.post("/verify", response_model=VerificationResponse)
async def verify_redemption(
    data: RedemptionCreate,
    orchestrator: RedemptionOrchestrator = Depends(get_orchestrator),
):
    """Check whether a redemption would be admitted. Changes nothing."""
    decision = await orchestrator.verify(_to_redemption(data))
    if not decision.admitted:
        return VerificationResponse(admissible=False, reason=decision.reason.message)
    return VerificationResponse(
        admissible=True,
        classification=decision.classification.value,
        eviction_target=decision.eviction_target,
    )
