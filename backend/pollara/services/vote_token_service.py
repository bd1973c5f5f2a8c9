"""
Vote token lifecycle: mint a single-use token, consume it exactly once.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from pollara.core.cache import ExpiringCache, get_vote_token_key
from pollara.core.config import settings
from pollara.core.exceptions import TokenExpired, TokenInvalid
from pollara.core.security import generate_vote_token, hash_vote_token


logger = logging.getLogger(__name__)


class VoteTokenService:
    """Service for vote token operations."""

    def __init__(self, cache: ExpiringCache, ttl_seconds: Optional[int] = None):
        self.cache = cache
        self.ttl_seconds = ttl_seconds or settings.VOTE_TOKEN_TTL_SECONDS

    async def mint(self, bearer_id: str) -> Tuple[str, datetime]:
        """
        Mint a vote token bound to ``bearer_id``.

        Earlier tokens for the same bearer stay live until consumed or expired.
        The token is not bound to a ballot target.

        Returns:
            Tuple of (token, expires_at)
        """
        token = generate_vote_token()
        expires_at = datetime.utcnow() + timedelta(seconds=self.ttl_seconds)

        await self.cache.set(
            get_vote_token_key(hash_vote_token(token)),
            str(bearer_id),
            self.ttl_seconds
        )

        logger.info("Vote token issued for user %s", bearer_id)
        return token, expires_at

    async def consume_and_validate(self, token: str, expected_bearer_id: str) -> None:
        """
        Consume ``token`` on behalf of ``expected_bearer_id``.

        Safe under concurrent calls with the same token: exactly one caller
        returns normally, every other caller gets TokenExpired.

        Raises:
            TokenExpired: token unknown, expired or already consumed
            TokenInvalid: token belongs to another bearer (left untouched)
        """
        key = get_vote_token_key(hash_vote_token(token))
        bound_bearer = await self.cache.delete_if_equals(key, str(expected_bearer_id))

        if bound_bearer is None:
            logger.warning("Vote token expired or already used")
            raise TokenExpired()

        if bound_bearer != str(expected_bearer_id):
            logger.error(
                "Vote token presented by %s is bound to another user",
                expected_bearer_id
            )
            raise TokenInvalid()

        logger.info("Vote token consumed for user %s", expected_bearer_id)
