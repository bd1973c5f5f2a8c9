"""
API dependencies for authentication and collaborator wiring.
"""
import uuid
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from pollara.core.cache import ExpiringCache, get_cache
from pollara.core.database import get_db
from pollara.core.exceptions import AuthenticationRequired
from pollara.core.security import decode_token
from pollara.models.user import User
from pollara.notifications.mailer import MailGateway, get_mailer
from pollara.services.otp_service import OtpService
from pollara.services.user_service import UserService


security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """
    Get the current authenticated user from the JWT token.
    Returns None if no valid token is provided.
    """
    if not credentials:
        return None

    token = credentials.credentials
    payload = decode_token(token)

    if not payload:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None

    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError:
        return None

    user_service = UserService(db)
    user = await user_service.get_user_by_id(user_uuid)

    if not user or not user.is_active:
        return None

    return user


async def require_authentication(
    current_user: Optional[User] = Depends(get_current_user)
) -> User:
    """
    Require a valid authenticated user.
    Raises 401 if not authenticated.
    """
    if not current_user:
        raise AuthenticationRequired()
    return current_user


def get_otp_service(
    cache: ExpiringCache = Depends(get_cache),
    mailer: MailGateway = Depends(get_mailer)
) -> OtpService:
    return OtpService(cache, mailer)
