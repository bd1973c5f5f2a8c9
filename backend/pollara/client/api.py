"""
HTTP client for the Pollara voting API.

Error responses are turned back into the matching ``PollaraError`` subclass
using their ``error_code``, so callers branch on exception type or code and
never on message text.
"""
from typing import Dict, List, Optional

import httpx

from pollara.core.exceptions import ERRORS_BY_CODE, ErrorCode, PollaraError
from pollara.services.otp_service import OtpPurpose
from pollara.storage.object_storage import SignedReference


class ApiError(PollaraError):
    """An error response without a recognised error code."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


def raise_for_error(response: httpx.Response) -> None:
    if response.status_code < 400:
        return

    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = body.get("message") or body.get("detail") or response.reason_phrase
    code = body.get("error_code")
    try:
        error_cls = ERRORS_BY_CODE[ErrorCode(code)]
    except (ValueError, KeyError):
        raise ApiError(str(message), response.status_code)
    raise error_cls(str(message))


class PollaraClient:
    """Async client for the voting API."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        access_token: Optional[str] = None,
        api_prefix: str = "/api/v1",
        assets: Optional[httpx.AsyncClient] = None,
    ):
        self.http = http
        self.access_token = access_token
        self.api_prefix = api_prefix.rstrip("/")
        # signed URLs point at object storage, not at the API host
        self.assets = assets or http

    def _headers(self) -> dict:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        response = await self.http.request(
            method,
            f"{self.api_prefix}{path}",
            headers=self._headers(),
            **kwargs
        )
        raise_for_error(response)
        return response.json()

    async def request_otp(self, identity: str, purpose: OtpPurpose) -> int:
        """Ask the server to issue an OTP. Returns its validity in seconds."""
        data = await self._request(
            "POST", "/otp",
            json={"identity": identity, "purpose": OtpPurpose(purpose).value}
        )
        return data["expires_in"]

    async def verify_otp(self, identity: str, purpose: OtpPurpose, code: str) -> bool:
        data = await self._request(
            "POST", "/otp/verify",
            json={"identity": identity, "purpose": OtpPurpose(purpose).value, "code": code}
        )
        return data["verified"]

    async def register_face(self, image: bytes, content_type: str, otp_code: str) -> bool:
        """Upload the face image. Returns True on first registration."""
        data = await self._request(
            "POST", "/face",
            files={"image": ("face", image, content_type)},
            data={"otp_code": otp_code}
        )
        return data["first_registration"]

    async def get_face_reference(self, refresh: bool = False) -> SignedReference:
        params = {"refresh": "true"} if refresh else None
        data = await self._request("GET", "/face", params=params)
        return SignedReference.from_dict(data)

    async def mint_vote_token(self) -> str:
        data = await self._request("POST", "/vote-token")
        return data["token"]

    async def cast_vote(
        self,
        token: str,
        target: str,
        selections: Dict[str, List[str]]
    ) -> dict:
        return await self._request(
            "POST", "/vote",
            json={"token": token, "target": target, "selections": selections}
        )

    async def fetch_image(self, url: str) -> bytes:
        """
        Download an image from a signed URL.

        Raises:
            httpx.HTTPError: on transport failure or a non-2xx response
        """
        response = await self.assets.get(url)
        response.raise_for_status()
        return response.content
