"""
Ballot store: targets, ballots and the one-ballot-per-voter guarantee.
"""
import uuid
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from pollara.core.exceptions import DoubleVoteAttempt
from pollara.models.ballot import Ballot
from pollara.models.target import BallotTarget


class BallotService:
    """Service for ballot persistence."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_target(self, target_id: str) -> Optional[BallotTarget]:
        """Get a ballot target by ID."""
        result = await self.db.execute(
            select(BallotTarget).where(BallotTarget.id == target_id)
        )
        return result.scalar_one_or_none()

    async def ballot_exists(self, voter_id: uuid.UUID, target_id: str) -> bool:
        """Check whether the voter already has an accepted ballot for the target."""
        result = await self.db.execute(
            select(Ballot.id).where(
                Ballot.voter_id == voter_id,
                Ballot.target_id == target_id
            )
        )
        return result.first() is not None

    async def insert_ballot(self, ballot: Ballot) -> Ballot:
        """
        Persist a ballot unless one already exists for (voter, target).

        The unique constraint makes the existence check and the insert a single
        statement, so two concurrent casts cannot both succeed.

        Raises:
            DoubleVoteAttempt: if the voter already voted for this target
        """
        self.db.add(ballot)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DoubleVoteAttempt() from e
        return ballot

    async def get_ballot(self, vote_id: str) -> Optional[Ballot]:
        """Get a ballot by its vote ID."""
        result = await self.db.execute(
            select(Ballot).where(Ballot.id == vote_id)
        )
        return result.scalar_one_or_none()
