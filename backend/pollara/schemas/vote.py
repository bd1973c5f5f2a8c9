"""
Vote-related Pydantic schemas.
"""
from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, validator

from pollara.services.cast_service import CastState


class VoteTokenResponse(BaseModel):
    """Response with a one-time vote token."""

    token: str = Field(..., description="One-time vote token")
    expires_at: datetime = Field(..., description="Token expiration time")
    state: CastState = Field(default=CastState.TOKEN_ISSUED)


class CastVoteRequest(BaseModel):
    """Request to cast a ballot with a one-time vote token."""

    token: str = Field(..., min_length=1, description="One-time vote token")
    target: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="ID of the election or form being voted on"
    )
    selections: Dict[str, List[str]] = Field(
        ...,
        description="Selected option IDs keyed by question ID"
    )

    @validator("selections")
    def selections_not_empty(cls, v):
        if not v:
            raise ValueError("selections must contain at least one question")
        return v


class CastVoteResponse(BaseModel):
    """Response after a ballot was accepted."""

    state: CastState = Field(..., description="Final state of the cast")
    vote_id: str = Field(..., description="Vote ID usable for later verification")
    cast_at: datetime = Field(..., description="Vote submission timestamp")


class VoteStatusResponse(BaseModel):
    """Response for checking vote status."""

    target_id: str = Field(...)
    has_voted: bool = Field(..., description="Whether the user has voted")


class VoteVerificationResponse(BaseModel):
    """Result of checking a stored ballot's integrity."""

    vote_id: str = Field(...)
    target_id: str = Field(...)
    status: str = Field(..., description="'success' or 'failed'")
    message: str = Field(...)
    cast_at: Optional[datetime] = Field(None)
