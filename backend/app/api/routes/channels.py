"""
Channel administration: ledger history and blocklist.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.errors import AdmissionError, AdmissionTimeout
from app.core.logging import get_logger
from app.schemas.ledger import BlockResponse, LedgerEntryResponse, LedgerPageResponse
from app.services.redemption_service import RedemptionOrchestrator
from app.api.dependencies import get_orchestrator

logger = get_logger(__name__)
router = APIRouter(prefix="/channels", tags=["Channels"])

PAGE_SIZE = 20


@router.get("/{channel_id}/history", response_model=LedgerPageResponse)
async def get_history(
    channel_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(PAGE_SIZE, ge=1, le=100),
    added: bool = Query(False),
    orchestrator: RedemptionOrchestrator = Depends(get_orchestrator),
):
    """Newest-first emote changes recorded for the channel."""
    entries = await orchestrator.history(channel_id, page, page_size, added)
    return LedgerPageResponse(
        entries=[
            LedgerEntryResponse(
                id=e.id,
                channel_id=e.channel_id,
                emote_id=e.item_id,
                change_type=e.change_type.value,
                blocked=e.blocked,
                created_at=e.created_at,
            )
            for e in entries
        ],
        page=page,
        page_size=page_size,
    )


@router.put("/{channel_id}/blocklist/{emote_id}", response_model=BlockResponse)
async def block_emote(
    channel_id: str,
    emote_id: str,
    orchestrator: RedemptionOrchestrator = Depends(get_orchestrator),
):
    """Block an emote for the channel and remove it if it is installed."""
    try:
        result = await orchestrator.block_item(channel_id, emote_id)
    except AdmissionTimeout as e:
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=e.message)
    except AdmissionError as e:
        logger.warning("block_failed", channel_id=channel_id, emote_id=emote_id, error=e.message)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)

    return BlockResponse(
        channel_id=channel_id,
        emote_id=emote_id,
        newly_blocked=result.newly_blocked,
        evicted=result.evicted,
    )


@router.delete("/{channel_id}/blocklist/{emote_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unblock_emote(
    channel_id: str,
    emote_id: str,
    orchestrator: RedemptionOrchestrator = Depends(get_orchestrator),
):
    if not await orchestrator.unblock_item(channel_id, emote_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Emote is not blocked",
        )
