"""
Ballot database model.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, UniqueConstraint

from pollara.core.database import Base
from pollara.models.target import GUID


class Ballot(Base):
    """
    An accepted ballot.

    The row is the audit trail: it is written once by the cast orchestrator and
    never updated or deleted. ``id`` is the content hash handed to the voter
    as their vote ID.
    """

    __tablename__ = "ballots"
    __table_args__ = (
        # at most one accepted ballot per (voter, target)
        UniqueConstraint("voter_id", "target_id", name="uq_ballots_voter_target"),
    )

    id = Column(String(64), primary_key=True)

    voter_id = Column(
        GUID(),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )
    target_id = Column(
        String(64),
        ForeignKey("ballot_targets.id"),
        nullable=False,
        index=True
    )

    # {"question_id": ["option_id", ...]}
    selections = Column(JSON, nullable=False)

    # Integrity
    nonce = Column(String(32), nullable=False)
    content_hash = Column(String(64), nullable=False)

    cast_at = Column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<Ballot(id='{self.id[:12]}...', target='{self.target_id}')>"

    def hash_payload(self) -> dict:
        """The fields covered by ``content_hash``."""
        return {
            "target": self.target_id,
            "selections": self.selections,
            "cast_at": self.cast_at.isoformat(),
            "nonce": self.nonce,
        }
