from app.schemas.redemption import RedemptionCreate, RedemptionResponse, VerificationResponse, EmoteResponse
from app.schemas.ledger import LedgerEntryResponse, LedgerPageResponse, BlockResponse

__all__ = [
    "RedemptionCreate", "RedemptionResponse", "VerificationResponse", "EmoteResponse",
    "LedgerEntryResponse", "LedgerPageResponse", "BlockResponse",
]
