"""
User database model.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, String, DateTime, Boolean

from pollara.core.database import Base
from pollara.models.target import GUID


class User(Base):
    """
    Voter account as seen by the voting service.
    Accounts are created by the identity service; this service only reads
    them and flips ``has_face`` on first face registration.
    """

    __tablename__ = "users"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)

    # Normalized (lower-case) email, also the OTP identity
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(200), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Set once, on the first successful face registration
    has_face = Column(Boolean, default=False, nullable=False)
    face_registered_at = Column(DateTime, nullable=True)

    # Hierarchical region code, e.g. "KR-11-680"
    delimitation_code = Column(String(32), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, has_face={self.has_face})>"

    def can_vote(self, delimitation_code: Optional[str]) -> bool:
        """Check the user lies within a target's region (unrestricted if None)."""
        if not delimitation_code:
            return True
        return bool(self.delimitation_code) and self.delimitation_code.startswith(delimitation_code)
