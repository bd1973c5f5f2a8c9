"""
Out-of-band message delivery (OTP codes, vote confirmations).
"""
import logging
from typing import Optional

import httpx

from pollara.core.config import settings
from pollara.core.exceptions import DeliveryFailed


logger = logging.getLogger(__name__)


class MailGateway:
    """Sends messages through the mail provider's HTTP API."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
    ):
        self.api_url = api_url or settings.MAIL_API_URL
        self.api_key = api_key if api_key is not None else settings.MAIL_API_KEY
        self.sender = sender or settings.MAIL_SENDER

    async def send_message(self, identity: str, subject: str, body: str) -> None:
        """
        Deliver ``body`` to ``identity``.

        Raises:
            DeliveryFailed: if the provider rejects the message or is unreachable
        """
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.api_url,
                    json={
                        "from": self.sender,
                        "to": [identity],
                        "subject": subject,
                        "html": body,
                    },
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    timeout=settings.MAIL_TIMEOUT_SECONDS,
                )
                response.raise_for_status()
        except httpx.RequestError as e:
            # For development without a provider, skip delivery
            if settings.DEBUG:
                logger.warning("Mail provider unreachable, skipping delivery: %s", e)
                return
            logger.error("Mail delivery failed: %s", e)
            raise DeliveryFailed() from e
        except httpx.HTTPStatusError as e:
            logger.error("Mail provider rejected message: %s", e.response.status_code)
            raise DeliveryFailed() from e


def get_mailer() -> MailGateway:
    """FastAPI dependency returning the delivery gateway."""
    return MailGateway()
