"""
User lookups and the face-registration flag.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.orm.attributes import set_committed_value

from pollara.models.user import User


class UserService:
    """Service for user operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        """Get a user by ID."""
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def set_has_face(self, user: User) -> bool:
        """
        Flip ``has_face`` on, once.

        Returns:
            True if this call flipped the flag, False if it was already set
        """
        now = datetime.utcnow()
        result = await self.db.execute(
            update(User)
            .where(User.id == user.id, User.has_face == False)  # noqa: E712
            .values(has_face=True, face_registered_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        flipped = result.rowcount == 1
        set_committed_value(user, "has_face", True)
        if flipped:
            set_committed_value(user, "face_registered_at", now)
        return flipped
