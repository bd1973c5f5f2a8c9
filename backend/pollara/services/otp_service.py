"""
One-time passcode lifecycle: issue, deliver, verify, invalidate.
"""
import enum
import logging
from typing import Optional

from pollara.core.cache import ExpiringCache, get_otp_key, get_otp_superseded_key
from pollara.core.config import settings
from pollara.core.exceptions import DeliveryFailed, OtpExpired
from pollara.core.security import generate_otp, hash_secret, verify_secret
from pollara.notifications.mailer import MailGateway


logger = logging.getLogger(__name__)

# superseded codes remembered per identity and purpose
SUPERSEDED_HISTORY = 5


class OtpPurpose(str, enum.Enum):
    """What an OTP is allowed to unlock."""
    FACE_REGISTRATION = "face-registration"
    EMAIL_VERIFICATION = "email-verification"
    PASSWORD_RESET = "password-reset"


OTP_SUBJECTS = {
    OtpPurpose.FACE_REGISTRATION: "POLLARA: Face ID Registration",
    OtpPurpose.EMAIL_VERIFICATION: "POLLARA: Verify your email",
    OtpPurpose.PASSWORD_RESET: "POLLARA: Password Reset",
}


def normalize_identity(identity: str) -> str:
    return identity.strip().lower()


class OtpService:
    """Service for one-time passcode operations."""

    def __init__(
        self,
        cache: ExpiringCache,
        mailer: MailGateway,
        ttl_seconds: Optional[int] = None,
        code_length: Optional[int] = None,
    ):
        self.cache = cache
        self.mailer = mailer
        self.ttl_seconds = ttl_seconds or settings.OTP_TTL_SECONDS
        self.code_length = code_length or settings.OTP_LENGTH

    async def issue(self, identity: str, purpose: OtpPurpose) -> None:
        """
        Issue a new OTP and deliver it.

        A still-live code for the same identity and purpose is superseded: it
        stops verifying and is remembered until its own expiry so that late
        attempts with it report ``OtpExpired``. If delivery fails the previous
        code is put back as it was.
        """
        identity = normalize_identity(identity)
        purpose = OtpPurpose(purpose)
        key = get_otp_key(purpose.value, identity)
        code = generate_otp(self.code_length)
        hashed_code = hash_secret(code)

        # save the hash before delivery so the code is verifiable on arrival
        previous, remaining = await self.cache.swap(key, hashed_code, self.ttl_seconds)

        try:
            await self.mailer.send_message(
                identity,
                OTP_SUBJECTS[purpose],
                self._render_body(code),
            )
        except DeliveryFailed:
            await self._rollback_issue(key, hashed_code, previous, remaining)
            raise

        if previous and remaining > 0:
            await self.cache.push_bounded(
                get_otp_superseded_key(purpose.value, identity),
                previous,
                remaining,
                SUPERSEDED_HISTORY,
            )
        logger.info("OTP issued for purpose %s", purpose.value)

    async def verify(self, identity: str, purpose: OtpPurpose, code: str) -> bool:
        """
        Verify a candidate code.

        Returns:
            True if the code matched (the OTP is consumed), False otherwise
            (the OTP stays live for another attempt).

        Raises:
            OtpExpired: if there is no live OTP for this identity and purpose,
                or the candidate is a code that a later issuance superseded
        """
        identity = normalize_identity(identity)
        purpose = OtpPurpose(purpose)
        key = get_otp_key(purpose.value, identity)

        hashed_code = await self.cache.get(key)
        if not hashed_code:
            logger.warning("OTP verification against missing or expired record")
            raise OtpExpired()

        if not verify_secret(code, hashed_code):
            if await self._is_superseded(purpose, identity, code):
                logger.warning("OTP verification with a superseded code")
                raise OtpExpired()
            logger.warning("OTP verification failed")
            return False

        # the delete decides the winner when two correct attempts race
        if not await self.cache.delete(key):
            logger.warning("OTP already consumed by a concurrent request")
            raise OtpExpired()

        logger.info("OTP verified and consumed")
        return True

    async def _is_superseded(self, purpose: OtpPurpose, identity: str, code: str) -> bool:
        superseded = await self.cache.members(get_otp_superseded_key(purpose.value, identity))
        return any(verify_secret(code, hashed) for hashed in superseded)

    async def _rollback_issue(
        self,
        key: str,
        hashed_code: str,
        previous: Optional[str],
        remaining: int,
    ) -> None:
        # only undo our own write; a concurrent issue may already have replaced it
        if await self.cache.delete_if_equals(key, hashed_code) != hashed_code:
            return
        if previous and remaining > 0:
            await self.cache.set(key, previous, remaining)
        logger.warning("OTP delivery failed, issuance rolled back")

    def _render_body(self, code: str) -> str:
        minutes = max(1, self.ttl_seconds // 60)
        return (
            "<p>Hello from Pollara! To complete your ongoing authentication process, "
            "please enter the OTP below.</p>"
            f'<strong style="font-size:25px;letter-spacing:2px">{code}</strong>'
            f"<p>This code expires in {minutes} minute(s).</p>"
            "<p>If you did not initiate the process that sent this email, please "
            "disregard this email.</p>"
            '<p>Best regards,<span style="display:block">Pollara.</span></p>'
        )
