"""
Object storage client for face images.

Talks to a Supabase-compatible Storage REST API: objects are uploaded with
upsert semantics and read back only through time-limited signed URLs.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import httpx

from pollara.core.config import settings
from pollara.core.exceptions import StorageUnavailable


logger = logging.getLogger(__name__)


@dataclass
class SignedReference:
    """A time-limited URL granting read access to a private object."""
    url: str
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at

    def to_dict(self) -> dict:
        return {"url": self.url, "expires_at": self.expires_at.isoformat()}

    @classmethod
    def from_dict(cls, data: dict) -> "SignedReference":
        return cls(url=data["url"], expires_at=datetime.fromisoformat(data["expires_at"]))


class ObjectStorageClient:
    """
    Client for the object storage backend.

    This client handles:
    - Uploading (and overwriting) objects
    - Minting signed, time-limited retrieval URLs
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        bucket: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.STORAGE_URL).rstrip("/")
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.api_key = api_key if api_key is not None else settings.STORAGE_API_KEY
        self.timeout = timeout or settings.STORAGE_TIMEOUT_SECONDS

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
        }

    async def put_object(self, path: str, data: bytes, content_type: str) -> None:
        """
        Upload ``data`` to ``path``, replacing any existing object.

        Args:
            path: Object path inside the bucket
            data: Raw object content
            content_type: MIME type stored with the object
        """
        headers = self._headers()
        headers.update({
            "Content-Type": content_type,
            "x-upsert": "true",
            "cache-control": "3600",
        })
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/object/{self.bucket}/{path}",
                    content=data,
                    headers=headers,
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Object upload failed for %s: %s", path, e)
            raise StorageUnavailable("Failed to store face image") from e

    async def sign_url(self, path: str, ttl_seconds: int) -> SignedReference:
        """
        Mint a signed URL for ``path`` valid for ``ttl_seconds``.

        ``expires_at`` is computed before the request is sent, so it never
        overstates the lifetime the storage backend actually granted.
        """
        expires_at = datetime.utcnow() + timedelta(seconds=ttl_seconds)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/object/sign/{self.bucket}/{path}",
                    json={"expiresIn": ttl_seconds},
                    headers=self._headers(),
                )
                response.raise_for_status()
                signed_path = response.json()["signedURL"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("URL signing failed for %s: %s", path, e)
            raise StorageUnavailable("Failed to sign face image URL") from e

        if signed_path.startswith("http"):
            url = signed_path
        else:
            url = f"{self.base_url}/{signed_path.lstrip('/')}"
        return SignedReference(url=url, expires_at=expires_at)


def get_storage() -> ObjectStorageClient:
    """FastAPI dependency returning an object storage client."""
    return ObjectStorageClient()
