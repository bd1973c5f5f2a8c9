"""
Ballot target database model (an election or a form).
"""
import uuid
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import Column, String, DateTime, Enum, JSON, TypeDecorator, CHAR
import enum

from pollara.core.database import Base


class GUID(TypeDecorator):
    """Platform-independent GUID type for SQLite and PostgreSQL."""
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            from sqlalchemy.dialects.postgresql import UUID
            return dialect.type_descriptor(UUID())
        else:
            return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        elif dialect.name == 'postgresql':
            return str(value)
        else:
            if isinstance(value, uuid.UUID):
                return str(value)
            else:
                return str(uuid.UUID(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid.UUID):
            return uuid.UUID(value)
        return value


class TargetKind(str, enum.Enum):
    """What a ballot is cast for."""
    ELECTION = "election"
    FORM = "form"


class BallotTarget(Base):
    """
    Something a voter can cast exactly one ballot for.

    ``questions`` holds the declared option set, one entry per sub-question:
    ``[{"id": "q1", "options": ["optA", "optB"], "max_selections": 1}, ...]``
    """

    __tablename__ = "ballot_targets"

    id = Column(String(64), primary_key=True)
    kind = Column(Enum(TargetKind), default=TargetKind.ELECTION, nullable=False)
    title = Column(String(200), nullable=False)
    questions = Column(JSON, nullable=False, default=list)

    # Region code; only voters whose own code starts with it may vote
    delimitation_code = Column(String(32), nullable=True)

    # Voting window
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<BallotTarget(id='{self.id}', kind={self.kind})>"

    @property
    def is_open(self) -> bool:
        """Check if the target currently accepts ballots."""
        now = datetime.utcnow()
        if self.start_time and now < self.start_time:
            return False
        if self.end_time and now > self.end_time:
            return False
        return True

    def get_question(self, question_id: str) -> Optional[Dict]:
        for question in self.questions or []:
            if question.get("id") == question_id:
                return question
        return None
