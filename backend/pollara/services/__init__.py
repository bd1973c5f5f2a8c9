"""
Business logic services.
"""
from pollara.services.otp_service import OtpService, OtpPurpose
from pollara.services.user_service import UserService
from pollara.services.face_service import FaceReferenceService
from pollara.services.vote_token_service import VoteTokenService
from pollara.services.ballot_service import BallotService
from pollara.services.cast_service import CastOrchestrator, CastState, CastOutcome

__all__ = [
    "OtpService",
    "OtpPurpose",
    "UserService",
    "FaceReferenceService",
    "VoteTokenService",
    "BallotService",
    "CastOrchestrator",
    "CastState",
    "CastOutcome",
]
