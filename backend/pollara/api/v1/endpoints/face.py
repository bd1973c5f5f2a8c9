"""
Face ID API endpoints.
"""
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from pollara.api.v1.deps import get_otp_service, require_authentication
from pollara.core.cache import ExpiringCache, get_cache
from pollara.core.config import settings
from pollara.core.database import get_db
from pollara.core.rate_limit import limiter
from pollara.models.user import User
from pollara.schemas.face import FaceRegisterResponse, SignedReferenceResponse
from pollara.services.face_service import FaceReferenceService
from pollara.services.otp_service import OtpService
from pollara.storage.object_storage import ObjectStorageClient, get_storage


router = APIRouter()


def get_face_service(
    db: AsyncSession = Depends(get_db),
    cache: ExpiringCache = Depends(get_cache),
    storage: ObjectStorageClient = Depends(get_storage),
    otp_service: OtpService = Depends(get_otp_service)
) -> FaceReferenceService:
    return FaceReferenceService(db, cache, storage, otp_service)


@router.post("", response_model=FaceRegisterResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT)
async def register_face(
    request: Request,
    image: UploadFile = File(..., description="Face image"),
    otp_code: str = Form(..., description="OTP issued for face-registration"),
    current_user: User = Depends(require_authentication),
    face_service: FaceReferenceService = Depends(get_face_service)
) -> FaceRegisterResponse:
    """
    Register (or replace) the current user's face image.

    Requires a live OTP issued for the ``face-registration`` purpose to the
    user's email. Registering again overwrites the stored image in place.
    """
    content = await image.read()
    first_registration = await face_service.register(
        current_user,
        content,
        image.content_type or "",
        otp_code
    )
    return FaceRegisterResponse(first_registration=first_registration)


@router.get("", response_model=SignedReferenceResponse)
@limiter.limit(settings.RATE_LIMIT)
async def get_face_reference(
    request: Request,
    refresh: bool = Query(False, description="Bypass the cache and sign a fresh URL"),
    current_user: User = Depends(require_authentication),
    face_service: FaceReferenceService = Depends(get_face_service)
) -> SignedReferenceResponse:
    """
    Get a signed, time-limited URL for the current user's face image.

    Clients that fail to fetch a cached URL should call once more with
    ``refresh=true`` before giving up.
    """
    reference = await face_service.get_signed_reference(current_user, force_refresh=refresh)
    return SignedReferenceResponse(url=reference.url, expires_at=reference.expires_at)
