"""
API v1 router configuration.
"""
from fastapi import APIRouter

from pollara.api.v1.endpoints import face, otp, votes
from pollara.schemas.error import ErrorResponse


# Documented body of every domain error
api_router = APIRouter(
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        410: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    }
)

api_router.include_router(
    otp.router,
    prefix="/otp",
    tags=["OTP"]
)

api_router.include_router(
    face.router,
    prefix="/face",
    tags=["Face ID"]
)

api_router.include_router(
    votes.token_router,
    prefix="/vote-token",
    tags=["Voting"]
)

api_router.include_router(
    votes.router,
    prefix="/vote",
    tags=["Voting"]
)
