"""
Tests for face image registration and signed references.
"""
import json
import re
from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient

from pollara.core.cache import get_face_reference_key
from pollara.core.exceptions import (
    ImageInvalid,
    NotRegistered,
    OtpExpired,
    OtpInvalid,
    StorageUnavailable,
)
from pollara.services.face_service import FaceReferenceService, get_face_image_path
from pollara.services.otp_service import OtpPurpose, OtpService
from pollara.storage.object_storage import SignedReference


JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64


def sent_code(mock_mailer) -> str:
    body = mock_mailer.send_message.call_args.args[2]
    return re.search(r">(\d+)</strong>", body).group(1)


@pytest.fixture
def otp_service(cache, mock_mailer) -> OtpService:
    return OtpService(cache, mock_mailer)


@pytest.fixture
def face_service(test_db, cache, mock_storage, otp_service) -> FaceReferenceService:
    return FaceReferenceService(test_db, cache, mock_storage, otp_service)


class TestFaceRegistration:
    """Test cases for storing a face image."""

    @pytest.mark.asyncio
    async def test_first_registration(self, face_service, otp_service, mock_mailer, mock_storage, test_user):
        """Test that the first registration stores the image and flips has_face."""
        await otp_service.issue(test_user.email, OtpPurpose.FACE_REGISTRATION)

        first = await face_service.register(
            test_user, JPEG_BYTES, "image/jpeg", sent_code(mock_mailer)
        )

        assert first is True
        assert test_user.has_face is True
        assert test_user.face_registered_at is not None
        mock_storage.put_object.assert_awaited_once_with(
            f"user-face-ids/{test_user.id}", JPEG_BYTES, "image/jpeg"
        )

    @pytest.mark.asyncio
    async def test_reregistration_overwrites_same_path(
        self, face_service, otp_service, mock_mailer, mock_storage, test_user
    ):
        """Test that registering again writes to the same path and is not first."""
        await otp_service.issue(test_user.email, OtpPurpose.FACE_REGISTRATION)
        await face_service.register(test_user, JPEG_BYTES, "image/jpeg", sent_code(mock_mailer))
        registered_at = test_user.face_registered_at

        await otp_service.issue(test_user.email, OtpPurpose.FACE_REGISTRATION)
        first = await face_service.register(
            test_user, JPEG_BYTES + b"\x01", "image/jpeg", sent_code(mock_mailer)
        )

        assert first is False
        assert test_user.face_registered_at == registered_at
        paths = {call.args[0] for call in mock_storage.put_object.await_args_list}
        assert paths == {get_face_image_path(test_user.id)}

    @pytest.mark.asyncio
    async def test_registration_requires_issued_otp(self, face_service, mock_storage, test_user):
        """Test that registration without a live code is refused."""
        with pytest.raises(OtpExpired):
            await face_service.register(test_user, JPEG_BYTES, "image/jpeg", "123456")

        mock_storage.put_object.assert_not_awaited()
        assert test_user.has_face is False

    @pytest.mark.asyncio
    async def test_registration_wrong_otp(
        self, face_service, otp_service, mock_mailer, mock_storage, test_user
    ):
        """Test that a wrong code is refused and nothing is stored."""
        await otp_service.issue(test_user.email, OtpPurpose.FACE_REGISTRATION)
        code = sent_code(mock_mailer)
        wrong = "000000" if code != "000000" else "111111"

        with pytest.raises(OtpInvalid):
            await face_service.register(test_user, JPEG_BYTES, "image/jpeg", wrong)

        mock_storage.put_object.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_registration_rejects_otp_for_other_purpose(
        self, face_service, otp_service, mock_mailer, test_user
    ):
        """Test that a password-reset code cannot register a face."""
        await otp_service.issue(test_user.email, OtpPurpose.PASSWORD_RESET)

        with pytest.raises(OtpExpired):
            await face_service.register(
                test_user, JPEG_BYTES, "image/jpeg", sent_code(mock_mailer)
            )

    @pytest.mark.asyncio
    async def test_invalid_image_does_not_burn_otp(
        self, face_service, otp_service, mock_mailer, test_user
    ):
        """Test that image validation happens before the code is consumed."""
        await otp_service.issue(test_user.email, OtpPurpose.FACE_REGISTRATION)
        code = sent_code(mock_mailer)

        with pytest.raises(ImageInvalid):
            await face_service.register(test_user, JPEG_BYTES, "application/pdf", code)
        with pytest.raises(ImageInvalid):
            await face_service.register(test_user, b"", "image/jpeg", code)

        assert await face_service.register(test_user, JPEG_BYTES, "image/jpeg", code) is True

    @pytest.mark.asyncio
    async def test_storage_failure_leaves_user_unregistered(
        self, face_service, otp_service, mock_mailer, mock_storage, test_user
    ):
        """Test that has_face is not set when the upload fails."""
        mock_storage.put_object.side_effect = StorageUnavailable()
        await otp_service.issue(test_user.email, OtpPurpose.FACE_REGISTRATION)
        code = sent_code(mock_mailer)

        with pytest.raises(StorageUnavailable):
            await face_service.register(test_user, JPEG_BYTES, "image/jpeg", code)

        assert test_user.has_face is False

        # the code was spent before the upload; a retry needs a fresh one
        mock_storage.put_object.side_effect = None
        with pytest.raises(OtpExpired):
            await face_service.register(test_user, JPEG_BYTES, "image/jpeg", code)
        mock_storage.put_object.assert_awaited_once()

        await otp_service.issue(test_user.email, OtpPurpose.FACE_REGISTRATION)
        assert await face_service.register(
            test_user, JPEG_BYTES, "image/jpeg", sent_code(mock_mailer)
        )
        assert test_user.has_face is True


class TestSignedReference:
    """Test cases for signed reference retrieval and caching."""

    @pytest.mark.asyncio
    async def test_unregistered_user(self, face_service, mock_storage, test_user):
        """Test that users without a face get NotRegistered."""
        with pytest.raises(NotRegistered):
            await face_service.get_signed_reference(test_user)

        mock_storage.sign_url.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reference_is_cached(self, face_service, mock_storage, registered_user):
        """Test that a second request is served from cache."""
        first = await face_service.get_signed_reference(registered_user)
        second = await face_service.get_signed_reference(registered_user)

        assert first.url == second.url
        assert mock_storage.sign_url.await_count == 1
        mock_storage.sign_url.assert_awaited_with(
            get_face_image_path(registered_user.id), 3600
        )

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_cache(self, face_service, mock_storage, registered_user):
        """Test that force_refresh always signs a new URL."""
        await face_service.get_signed_reference(registered_user)
        await face_service.get_signed_reference(registered_user, force_refresh=True)

        assert mock_storage.sign_url.await_count == 2

    @pytest.mark.asyncio
    async def test_expired_cache_entry_is_a_miss(
        self, face_service, cache, mock_storage, registered_user
    ):
        """Test that a cached reference past its expiry is never served."""
        stale = SignedReference(
            url="https://storage.test/stale",
            expires_at=datetime.utcnow() - timedelta(seconds=5),
        )
        await cache.set(
            get_face_reference_key(str(registered_user.id)),
            json.dumps(stale.to_dict()),
            600,
        )

        reference = await face_service.get_signed_reference(registered_user)

        assert reference.url != stale.url
        assert not reference.is_expired()
        mock_storage.sign_url.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_malformed_cache_entry_is_a_miss(
        self, face_service, cache, mock_storage, registered_user
    ):
        """Test that garbage in the cache is replaced."""
        await cache.set(get_face_reference_key(str(registered_user.id)), "not json", 600)

        await face_service.get_signed_reference(registered_user)

        mock_storage.sign_url.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cache_entry_never_outlives_grant(
        self, face_service, cache, mock_storage, registered_user
    ):
        """Test that the cache TTL is capped by the URL's remaining lifetime."""
        async def short_grant(path, ttl_seconds):
            return SignedReference(
                url="https://storage.test/short",
                expires_at=datetime.utcnow() + timedelta(seconds=120),
            )

        mock_storage.sign_url.side_effect = short_grant

        await face_service.get_signed_reference(registered_user)

        ttl = await cache.client.ttl(get_face_reference_key(str(registered_user.id)))
        assert 0 < ttl <= 120

    @pytest.mark.asyncio
    async def test_reregistration_drops_cached_reference(
        self, face_service, otp_service, mock_mailer, cache, registered_user
    ):
        """Test that a new upload invalidates the cached reference."""
        await face_service.get_signed_reference(registered_user)
        key = get_face_reference_key(str(registered_user.id))
        assert await cache.get(key) is not None

        await otp_service.issue(registered_user.email, OtpPurpose.FACE_REGISTRATION)
        await face_service.register(
            registered_user, JPEG_BYTES, "image/png", sent_code(mock_mailer)
        )

        assert await cache.get(key) is None


class TestFaceEndpoints:
    """Test cases for Face ID API endpoints."""

    @pytest.mark.asyncio
    async def test_register_face(
        self,
        client: AsyncClient,
        auth_headers: dict,
        mock_mailer,
    ):
        """Test uploading a face image with a fresh code."""
        await client.post(
            "/api/v1/otp",
            json={"identity": "alice@example.com", "purpose": "face-registration"},
        )

        response = await client.post(
            "/api/v1/face",
            files={"image": ("face.jpg", JPEG_BYTES, "image/jpeg")},
            data={"otp_code": sent_code(mock_mailer)},
            headers=auth_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["first_registration"] is True

    @pytest.mark.asyncio
    async def test_register_face_unauthenticated(self, client: AsyncClient):
        """Test that unauthenticated uploads are refused."""
        response = await client.post(
            "/api/v1/face",
            files={"image": ("face.jpg", JPEG_BYTES, "image/jpeg")},
            data={"otp_code": "123456"},
        )

        assert response.status_code == 401
        assert response.json()["error_code"] == "AUTHENTICATION_REQUIRED"

    @pytest.mark.asyncio
    async def test_register_face_bad_content_type(
        self,
        client: AsyncClient,
        auth_headers: dict,
    ):
        """Test that non-image uploads are refused."""
        response = await client.post(
            "/api/v1/face",
            files={"image": ("face.txt", b"hello", "text/plain")},
            data={"otp_code": "123456"},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "IMAGE_INVALID"

    @pytest.mark.asyncio
    async def test_get_reference_not_registered(
        self,
        client: AsyncClient,
        auth_headers: dict,
    ):
        """Test that fetching a reference before registration fails."""
        response = await client.get("/api/v1/face", headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["error_code"] == "NOT_REGISTERED"

    @pytest.mark.asyncio
    async def test_get_reference(
        self,
        client: AsyncClient,
        registered_auth_headers: dict,
        mock_storage,
    ):
        """Test fetching and refreshing the signed reference."""
        response = await client.get("/api/v1/face", headers=registered_auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["url"].startswith("https://storage.test/")
        assert "expires_at" in data

        await client.get("/api/v1/face", headers=registered_auth_headers)
        assert mock_storage.sign_url.await_count == 1

        await client.get(
            "/api/v1/face",
            params={"refresh": "true"},
            headers=registered_auth_headers,
        )
        assert mock_storage.sign_url.await_count == 2

    @pytest.mark.asyncio
    async def test_register_face_rate_limited(self, client: AsyncClient, auth_headers: dict):
        """Test that repeated uploads from one client are throttled."""
        for _ in range(10):
            response = await client.post(
                "/api/v1/face",
                files={"image": ("face.jpg", JPEG_BYTES, "image/jpeg")},
                data={"otp_code": "123456"},
                headers=auth_headers,
            )
            assert response.status_code == 410

        response = await client.post(
            "/api/v1/face",
            files={"image": ("face.jpg", JPEG_BYTES, "image/jpeg")},
            data={"otp_code": "123456"},
            headers=auth_headers,
        )

        assert response.status_code == 429
        assert response.json()["error_code"] == "RATE_LIMITED"
