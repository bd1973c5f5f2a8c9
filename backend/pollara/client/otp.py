"""
Client-side face registration flow: request a code, then upload with it.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from pollara.client.api import PollaraClient
from pollara.core.exceptions import ErrorCode, OtpExpired, PollaraError
from pollara.services.otp_service import OtpPurpose


logger = logging.getLogger(__name__)


class ResendThrottled(Exception):
    """A new code was requested before the resend countdown ran out."""

    def __init__(self, remaining: float):
        super().__init__(f"Resend available in {remaining:.0f}s")
        self.remaining = remaining


class ResendCountdown:
    """Minimum wait between two code requests for the same flow."""

    def __init__(self, seconds: int = 60, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self.clock = clock
        self._started_at: Optional[float] = None

    def start(self) -> None:
        self._started_at = self.clock()

    def reset(self) -> None:
        self._started_at = None

    def remaining(self) -> float:
        if self._started_at is None:
            return 0.0
        return max(0.0, self.seconds - (self.clock() - self._started_at))

    def can_resend(self) -> bool:
        return self.remaining() == 0.0


@dataclass
class RegistrationState:
    code_sent: bool = False
    code_expires_in: Optional[int] = None
    registered: bool = False
    first_registration: Optional[bool] = None
    last_error: Optional[ErrorCode] = None


class FaceRegistrationFlow:
    """Gates a face upload behind a freshly issued one-time code."""

    purpose = OtpPurpose.FACE_REGISTRATION

    def __init__(
        self,
        api: PollaraClient,
        identity: str,
        countdown: Optional[ResendCountdown] = None,
    ):
        self.api = api
        self.identity = identity
        self.countdown = countdown or ResendCountdown()
        self.state = RegistrationState()

    async def request_code(self) -> int:
        """
        Ask for a new code. A previously issued code stops working.

        Raises:
            ResendThrottled: the resend countdown has not elapsed
        """
        if self.state.code_sent and not self.countdown.can_resend():
            raise ResendThrottled(self.countdown.remaining())

        expires_in = await self.api.request_otp(self.identity, self.purpose)
        self.state.code_sent = True
        self.state.code_expires_in = expires_in
        self.state.last_error = None
        self.countdown.start()
        return expires_in

    async def submit(self, image: bytes, content_type: str, code: str) -> bool:
        """
        Upload the face image with the code the user typed in.

        Returns:
            True if this was the user's first registration
        """
        if not self.state.code_sent:
            raise RuntimeError("Request a code before submitting")

        try:
            first = await self.api.register_face(image, content_type, code)
        except OtpExpired:
            # a new code is needed; allow requesting it right away
            self.state.code_sent = False
            self.state.last_error = ErrorCode.OTP_EXPIRED
            self.countdown.reset()
            raise
        except PollaraError as e:
            self.state.last_error = e.error_code
            raise

        logger.info("Face registered (first registration: %s)", first)
        self.state.registered = True
        self.state.first_registration = first
        self.state.code_sent = False
        self.state.last_error = None
        return first
