"""
Client-side pieces of the voting flow.
"""
from pollara.client.api import ApiError, PollaraClient, raise_for_error
from pollara.client.face import FaceEmbedder, euclidean_distance, is_match, match_confidence
from pollara.client.gate import (
    RETRY_POLICY,
    CaptureError,
    CastResult,
    GateState,
    RetryAction,
    VerificationGate,
    next_action,
)
from pollara.client.otp import FaceRegistrationFlow, ResendCountdown, ResendThrottled

__all__ = [
    "ApiError",
    "PollaraClient",
    "raise_for_error",
    "FaceEmbedder",
    "euclidean_distance",
    "is_match",
    "match_confidence",
    "RETRY_POLICY",
    "CaptureError",
    "CastResult",
    "GateState",
    "RetryAction",
    "VerificationGate",
    "next_action",
    "FaceRegistrationFlow",
    "ResendCountdown",
    "ResendThrottled",
]
