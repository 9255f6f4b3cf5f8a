"""
Pydantic schemas for redemption request/response validation.
"""

from typing import Optional
from pydantic import BaseModel, Field, model_validator


class RedemptionCreate(BaseModel):
    channel_id: str = Field(..., min_length=1, max_length=64)
    channel_login: str = Field(..., min_length=1, max_length=64)
    user_id: str = Field(..., min_length=1, max_length=64)
    user_name: str = Field(..., min_length=1, max_length=64)
    redemption_id: str = Field("", max_length=64)
    reward_id: str = Field("", max_length=64)
    emote_id: Optional[str] = Field(None, min_length=1, max_length=64)
    user_input: str = Field("", max_length=500)
    slots: Optional[int] = Field(None, gt=0, le=100)
    update_status: bool = True

    @model_validator(mode="after")
    def require_emote_reference(self):
        if not self.emote_id and not self.user_input:
            raise ValueError("either emote_id or user_input is required")
        return self


class EmoteResponse(BaseModel):
    id: str
    name: str


class RedemptionResponse(BaseModel):
    success: bool
    state: str
    message: str
    classification: Optional[str] = None
    installed: Optional[EmoteResponse] = None
    evicted: Optional[EmoteResponse] = None
    evicted_id: Optional[str] = None
    error: Optional[str] = None
    history: list[str] = []


class VerificationResponse(BaseModel):
    admissible: bool
    classification: Optional[str] = None
    eviction_target: Optional[str] = None
    reason: Optional[str] = None
