"""
Face reference store: binds a user to their stored face image and hands out
cached, time-limited signed references to it.
"""
import json
import logging
import math
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pollara.core.cache import ExpiringCache, get_face_reference_key
from pollara.core.config import settings
from pollara.core.exceptions import ImageInvalid, NotRegistered, OtpInvalid
from pollara.models.user import User
from pollara.services.otp_service import OtpPurpose, OtpService
from pollara.services.user_service import UserService
from pollara.storage.object_storage import ObjectStorageClient, SignedReference


logger = logging.getLogger(__name__)


def get_face_image_path(user_id) -> str:
    """Deterministic storage path of a user's face image."""
    return f"{settings.FACE_IMAGE_PREFIX}/{user_id}"


class FaceReferenceService:
    """Service for face image registration and retrieval."""

    def __init__(
        self,
        db: AsyncSession,
        cache: ExpiringCache,
        storage: ObjectStorageClient,
        otp_service: OtpService,
    ):
        self.cache = cache
        self.storage = storage
        self.otp_service = otp_service
        self.user_service = UserService(db)

    async def register(
        self,
        user: User,
        image: bytes,
        content_type: str,
        otp_code: str
    ) -> bool:
        """
        Store (or overwrite) the user's face image.

        Requires a live OTP issued for face registration to the user's email.

        Returns:
            True if this was the user's first registration
        """
        self._validate_image(image, content_type)

        # consumed before the upload: a failed upload costs the voter a new code
        verified = await self.otp_service.verify(
            user.email,
            OtpPurpose.FACE_REGISTRATION,
            otp_code
        )
        if not verified:
            raise OtpInvalid()

        path = get_face_image_path(user.id)
        await self.storage.put_object(path, image, content_type)

        # the previous signature still points at the same path, but drop it so
        # the next fetch is signed against the freshly written object
        await self.cache.delete(get_face_reference_key(str(user.id)))

        first_registration = False
        if not user.has_face:
            first_registration = await self.user_service.set_has_face(user)

        logger.info(
            "Face image stored for user %s (first registration: %s)",
            user.id,
            first_registration
        )
        return first_registration

    async def get_signed_reference(
        self,
        user: User,
        force_refresh: bool = False
    ) -> SignedReference:
        """
        Get a signed reference to the user's face image.

        Served from cache unless ``force_refresh`` is set or the cached entry
        has already expired; otherwise a fresh URL is minted and cached.

        Raises:
            NotRegistered: if the user has not registered a face image
        """
        if not user.has_face:
            logger.warning("Signed reference requested by unregistered user %s", user.id)
            raise NotRegistered()

        key = get_face_reference_key(str(user.id))

        if not force_refresh:
            cached = await self._load_cached(key)
            if cached:
                logger.info("Face reference served from cache")
                return cached

        reference = await self.storage.sign_url(
            get_face_image_path(user.id),
            settings.FACE_SIGNED_URL_TTL_SECONDS
        )

        # never let the cache entry outlive the grant it wraps
        remaining = (reference.expires_at - datetime.utcnow()).total_seconds()
        ttl = min(settings.FACE_REFERENCE_CACHE_TTL_SECONDS, math.floor(remaining))
        if ttl > 0:
            await self.cache.set(key, json.dumps(reference.to_dict()), ttl)

        logger.info("Face reference signed (forced: %s)", force_refresh)
        return reference

    async def _load_cached(self, key: str) -> Optional[SignedReference]:
        raw = await self.cache.get(key)
        if not raw:
            return None

        try:
            reference = SignedReference.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding malformed face reference cache entry")
            await self.cache.delete(key)
            return None

        if reference.is_expired():
            await self.cache.delete(key)
            return None
        return reference

    def _validate_image(self, image: bytes, content_type: str) -> None:
        if not image:
            raise ImageInvalid("Face image is empty")
        if content_type not in settings.FACE_IMAGE_CONTENT_TYPES:
            raise ImageInvalid(f"Unsupported image type: {content_type}")
        if len(image) > settings.FACE_IMAGE_MAX_BYTES:
            raise ImageInvalid("Face image is too large")
