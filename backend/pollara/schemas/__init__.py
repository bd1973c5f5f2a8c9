"""
Pydantic schemas for request/response validation.
"""
from pollara.schemas.otp import (
    OtpIssueRequest,
    OtpIssueResponse,
    OtpVerifyRequest,
    OtpVerifyResponse,
)
from pollara.schemas.face import (
    FaceRegisterResponse,
    SignedReferenceResponse,
)
from pollara.schemas.vote import (
    VoteTokenResponse,
    CastVoteRequest,
    CastVoteResponse,
    VoteStatusResponse,
    VoteVerificationResponse,
)
from pollara.schemas.error import ErrorResponse

__all__ = [
    # OTP
    "OtpIssueRequest",
    "OtpIssueResponse",
    "OtpVerifyRequest",
    "OtpVerifyResponse",
    # Face
    "FaceRegisterResponse",
    "SignedReferenceResponse",
    # Vote
    "VoteTokenResponse",
    "CastVoteRequest",
    "CastVoteResponse",
    "VoteStatusResponse",
    "VoteVerificationResponse",
    # Errors
    "ErrorResponse",
]
