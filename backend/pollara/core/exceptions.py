"""
Domain errors with stable, machine-readable error codes.

Every failure a client is expected to branch on carries an ``ErrorCode`` so
that retry decisions never depend on the human-readable message.
"""
import enum
from typing import Optional

from fastapi import status


class ErrorCode(str, enum.Enum):
    """Stable error codes returned in every error response body."""
    OTP_EXPIRED = "OTP_EXPIRED"
    OTP_INVALID = "OTP_INVALID"
    NOT_REGISTERED = "NOT_REGISTERED"
    SIGNED_REFERENCE_STALE = "SIGNED_REFERENCE_STALE"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    DOUBLE_VOTE_ATTEMPT = "DOUBLE_VOTE_ATTEMPT"
    FACE_NOT_DETECTED = "FACE_NOT_DETECTED"
    BALLOT_INVALID = "BALLOT_INVALID"
    TARGET_NOT_FOUND = "TARGET_NOT_FOUND"
    TARGET_CLOSED = "TARGET_CLOSED"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    VOTE_NOT_FOUND = "VOTE_NOT_FOUND"
    IMAGE_INVALID = "IMAGE_INVALID"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    RATE_LIMITED = "RATE_LIMITED"
    REQUEST_FAILED = "REQUEST_FAILED"


class PollaraError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: ErrorCode = ErrorCode.REQUEST_FAILED
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error_code": self.error_code.value,
            "message": self.message,
        }


class OtpExpired(PollaraError):
    status_code = status.HTTP_410_GONE
    error_code = ErrorCode.OTP_EXPIRED
    default_message = "OTP has expired"


class OtpInvalid(PollaraError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = ErrorCode.OTP_INVALID
    default_message = "Invalid OTP"


class NotRegistered(PollaraError):
    status_code = status.HTTP_409_CONFLICT
    error_code = ErrorCode.NOT_REGISTERED
    default_message = "User has not registered Face ID"


class SignedReferenceStale(PollaraError):
    """Raised client-side when the cached signed URL can no longer be fetched."""
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = ErrorCode.SIGNED_REFERENCE_STALE
    default_message = "Signed face reference is no longer valid"


class TokenExpired(PollaraError):
    status_code = status.HTTP_410_GONE
    error_code = ErrorCode.TOKEN_EXPIRED
    default_message = "Vote Token has expired"


class TokenInvalid(PollaraError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = ErrorCode.TOKEN_INVALID
    default_message = "Invalid Vote Token"


class DoubleVoteAttempt(PollaraError):
    status_code = status.HTTP_409_CONFLICT
    error_code = ErrorCode.DOUBLE_VOTE_ATTEMPT
    default_message = "You have voted for this target already!"


class FaceNotDetected(PollaraError):
    """Raised client-side when the embedder finds no face in an image."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = ErrorCode.FACE_NOT_DETECTED
    default_message = "Face not detected. Please try again"


class BallotInvalid(PollaraError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = ErrorCode.BALLOT_INVALID
    default_message = "Ballot is invalid"


class TargetNotFound(PollaraError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = ErrorCode.TARGET_NOT_FOUND
    default_message = "Ballot target not found"


class TargetClosed(PollaraError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = ErrorCode.TARGET_CLOSED
    default_message = "Ballot target is not open for voting"


class NotEligible(PollaraError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = ErrorCode.NOT_ELIGIBLE
    default_message = "You are not eligible to vote on this target"


class VoteNotFound(PollaraError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = ErrorCode.VOTE_NOT_FOUND
    default_message = "Vote not found"


class ImageInvalid(PollaraError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = ErrorCode.IMAGE_INVALID
    default_message = "Face image is invalid"


class StorageUnavailable(PollaraError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = ErrorCode.STORAGE_UNAVAILABLE
    default_message = "Object storage is unavailable"


class DeliveryFailed(PollaraError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = ErrorCode.DELIVERY_FAILED
    default_message = "Message delivery failed"


class AuthenticationRequired(PollaraError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = ErrorCode.AUTHENTICATION_REQUIRED
    default_message = "Authentication required"


class RateLimited(PollaraError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = ErrorCode.RATE_LIMITED
    default_message = "Too many requests, please try again later"


ERRORS_BY_CODE = {
    cls.error_code: cls
    for cls in (
        OtpExpired,
        OtpInvalid,
        NotRegistered,
        SignedReferenceStale,
        TokenExpired,
        TokenInvalid,
        DoubleVoteAttempt,
        FaceNotDetected,
        BallotInvalid,
        TargetNotFound,
        TargetClosed,
        NotEligible,
        VoteNotFound,
        ImageInvalid,
        StorageUnavailable,
        DeliveryFailed,
        AuthenticationRequired,
        RateLimited,
    )
}
