"""
Per-client request rate limiting for the OTP and Face ID endpoints.

Counters live in Redis so every worker shares the same window.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from pollara.core.config import settings
from pollara.core.exceptions import RateLimited


logger = logging.getLogger(__name__)


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.RATE_LIMIT_STORAGE_URL or settings.REDIS_URL,
    key_prefix="rate-limit",
    enabled=settings.RATE_LIMIT_ENABLED,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render an exhausted limit as RATE_LIMITED with a Retry-After hint."""
    logger.warning(
        "Rate limit exceeded for %s on %s",
        get_remote_address(request),
        request.url.path,
    )
    error = RateLimited(f"Too many requests, limit is {exc.detail}")
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
        headers={"Retry-After": str(exc.limit.limit.get_expiry())},
    )
