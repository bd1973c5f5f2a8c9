"""
One-time passcode API endpoints.
"""
from fastapi import APIRouter, Depends, Request, status

from pollara.api.v1.deps import get_otp_service
from pollara.core.config import settings
from pollara.core.exceptions import OtpInvalid
from pollara.core.rate_limit import limiter
from pollara.schemas.otp import (
    OtpIssueRequest,
    OtpIssueResponse,
    OtpVerifyRequest,
    OtpVerifyResponse,
)
from pollara.services.otp_service import OtpService


router = APIRouter()


@router.post("", response_model=OtpIssueResponse, status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(settings.RATE_LIMIT)
async def issue_otp(
    request: Request,
    payload: OtpIssueRequest,
    otp_service: OtpService = Depends(get_otp_service)
) -> OtpIssueResponse:
    """
    Issue a one-time passcode and deliver it to the identity.

    Any previous unconsumed code for the same identity and purpose stops
    working. Clients should throttle resends with their own countdown; the
    server-side expiry is authoritative.
    """
    await otp_service.issue(payload.identity, payload.purpose)
    return OtpIssueResponse(expires_in=otp_service.ttl_seconds)


@router.post("/verify", response_model=OtpVerifyResponse)
@limiter.limit(settings.RATE_LIMIT)
async def verify_otp(
    request: Request,
    payload: OtpVerifyRequest,
    otp_service: OtpService = Depends(get_otp_service)
) -> OtpVerifyResponse:
    """
    Verify (and consume) a one-time passcode.

    Fails with OTP_EXPIRED when there is no live code (request a new one) and
    OTP_INVALID when the code does not match (retype; the code stays live).
    """
    verified = await otp_service.verify(payload.identity, payload.purpose, payload.code)
    if not verified:
        raise OtpInvalid()
    return OtpVerifyResponse(verified=True)
