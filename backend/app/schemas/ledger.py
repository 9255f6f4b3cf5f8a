"""
Pydantic schemas for ledger history and blocklist endpoints.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class LedgerEntryResponse(BaseModel):
    id: Optional[int]
    channel_id: str
    emote_id: str
    change_type: str
    blocked: bool
    created_at: Optional[datetime]


class LedgerPageResponse(BaseModel):
    entries: list[LedgerEntryResponse]
    page: int
    page_size: int


class BlockResponse(BaseModel):
    channel_id: str
    emote_id: str
    newly_blocked: bool
    evicted: bool
