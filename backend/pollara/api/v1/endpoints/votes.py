"""
Vote token and ballot casting API endpoints.
This is the core module enforcing single-use tokens and one ballot per voter.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pollara.api.v1.deps import require_authentication
from pollara.core.cache import ExpiringCache, get_cache
from pollara.core.database import get_db
from pollara.core.exceptions import NotRegistered
from pollara.models.user import User
from pollara.notifications.mailer import MailGateway, get_mailer
from pollara.schemas.vote import (
    CastVoteRequest,
    CastVoteResponse,
    VoteStatusResponse,
    VoteTokenResponse,
    VoteVerificationResponse,
)
from pollara.services.cast_service import CastOrchestrator
from pollara.services.vote_token_service import VoteTokenService


token_router = APIRouter()
router = APIRouter()


def get_cast_orchestrator(
    db: AsyncSession = Depends(get_db),
    cache: ExpiringCache = Depends(get_cache),
    mailer: MailGateway = Depends(get_mailer)
) -> CastOrchestrator:
    return CastOrchestrator(db, cache, mailer)


@token_router.post("", response_model=VoteTokenResponse)
async def mint_vote_token(
    current_user: User = Depends(require_authentication),
    cache: ExpiringCache = Depends(get_cache)
) -> VoteTokenResponse:
    """
    Mint a one-time vote token after a passed face verification.

    The token is single-use and short-lived. Mint a new one for every cast
    attempt; older tokens simply expire.
    """
    if not current_user.has_face:
        raise NotRegistered()

    token, expires_at = await VoteTokenService(cache).mint(str(current_user.id))
    return VoteTokenResponse(token=token, expires_at=expires_at)


@router.post("", response_model=CastVoteResponse)
async def cast_vote(
    request: CastVoteRequest,
    current_user: User = Depends(require_authentication),
    orchestrator: CastOrchestrator = Depends(get_cast_orchestrator)
) -> CastVoteResponse:
    """
    Cast a ballot.

    1. Validates the target and the selections against its declared options
    2. Rejects a voter who already has a ballot for the target
    3. Consumes the one-time vote token
    4. Persists the ballot (a concurrent duplicate loses on the unique key)
    5. Returns the vote ID for later verification

    TOKEN_EXPIRED means mint a new token and resubmit the same ballot.
    DOUBLE_VOTE_ATTEMPT is terminal.
    """
    outcome = await orchestrator.cast(
        current_user,
        request.token,
        request.target,
        request.selections
    )
    return CastVoteResponse(
        state=outcome.state,
        vote_id=outcome.vote_id,
        cast_at=outcome.cast_at
    )


@router.get("/status/{target_id}", response_model=VoteStatusResponse)
async def check_vote_status(
    target_id: str,
    current_user: User = Depends(require_authentication),
    orchestrator: CastOrchestrator = Depends(get_cast_orchestrator)
) -> VoteStatusResponse:
    """Check if the current user has voted for a target."""
    has_voted = await orchestrator.has_voted(current_user, target_id)
    return VoteStatusResponse(target_id=target_id, has_voted=has_voted)


@router.get("/verify/{vote_id}", response_model=VoteVerificationResponse)
async def verify_vote(
    vote_id: str,
    orchestrator: CastOrchestrator = Depends(get_cast_orchestrator)
) -> VoteVerificationResponse:
    """
    Verify that a ballot was stored as cast.

    Recomputes the ballot's content hash and compares it with its vote ID.
    """
    result = await orchestrator.verify_vote(vote_id)
    return VoteVerificationResponse(**result)
