"""
Cast orchestrator handling ballot validation, token consumption and persistence.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pollara.core.cache import ExpiringCache
from pollara.core.exceptions import (
    BallotInvalid,
    DeliveryFailed,
    DoubleVoteAttempt,
    NotEligible,
    TargetClosed,
    TargetNotFound,
    VoteNotFound,
)
from pollara.core.security import content_hash, generate_nonce
from pollara.models.ballot import Ballot
from pollara.models.target import BallotTarget
from pollara.models.user import User
from pollara.notifications.mailer import MailGateway
from pollara.services.ballot_service import BallotService
from pollara.services.vote_token_service import VoteTokenService


logger = logging.getLogger(__name__)


class CastState(str, enum.Enum):
    """Lifecycle of a single cast attempt."""
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    TOKEN_ISSUED = "TOKEN_ISSUED"
    CASTING = "CASTING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


@dataclass
class CastOutcome:
    state: CastState
    vote_id: Optional[str] = None
    cast_at: Optional[datetime] = None


def validate_selections(target: BallotTarget, selections: Dict[str, List[str]]) -> None:
    """
    Check a ballot payload against the target's declared questions.

    Raises:
        BallotInvalid: describing the first problem found
    """
    if not selections:
        raise BallotInvalid("Ballot has no selections")

    for question_id, option_ids in selections.items():
        question = target.get_question(question_id)
        if question is None:
            raise BallotInvalid(f'Unknown question "{question_id}"')

        if not option_ids:
            raise BallotInvalid(f'No option selected for question "{question_id}"')

        if len(set(option_ids)) != len(option_ids):
            raise BallotInvalid(f'Duplicate option for question "{question_id}"')

        allowed = set(question.get("options", []))
        unknown = [o for o in option_ids if o not in allowed]
        if unknown:
            raise BallotInvalid(f'Unknown option "{unknown[0]}" for question "{question_id}"')

        max_selections = question.get("max_selections", 1)
        if len(option_ids) > max_selections:
            raise BallotInvalid(
                f'Question "{question_id}" allows at most {max_selections} selection(s)'
            )


class CastOrchestrator:
    """Accepts or rejects a cast request as one logical unit."""

    def __init__(
        self,
        db: AsyncSession,
        cache: ExpiringCache,
        mailer: Optional[MailGateway] = None
    ):
        self.ballots = BallotService(db)
        self.tokens = VoteTokenService(cache)
        self.mailer = mailer

    async def cast(
        self,
        voter: User,
        token: str,
        target_id: str,
        selections: Dict[str, List[str]]
    ) -> CastOutcome:
        """
        Cast a ballot for ``target_id``.

        Checks without side effects run first, so a malformed payload does not
        burn the token. Token consumption then precedes the insert; the
        insert's unique constraint is the final double-vote guard.

        Raises:
            TargetNotFound, TargetClosed, BallotInvalid: payload problems
            NotEligible: the voter is outside the target's region
            DoubleVoteAttempt: the voter already has a ballot for the target
            TokenExpired, TokenInvalid: token problems
        """
        # read before any rollback expires the instance
        voter_id = voter.id

        target = await self.ballots.get_target(target_id)
        if not target:
            raise TargetNotFound()
        if not target.is_open:
            raise TargetClosed()
        if not voter.can_vote(target.delimitation_code):
            logger.warning("Voter %s is outside the region of %s", voter_id, target_id)
            raise NotEligible()

        validate_selections(target, selections)

        if await self.ballots.ballot_exists(voter_id, target_id):
            logger.warning("Double vote attempt by %s on %s", voter_id, target_id)
            raise DoubleVoteAttempt()

        await self.tokens.consume_and_validate(token, str(voter_id))

        cast_at = datetime.utcnow()
        ballot = Ballot(
            voter_id=voter_id,
            target_id=target_id,
            selections=selections,
            nonce=generate_nonce(),
            cast_at=cast_at,
        )
        ballot.content_hash = content_hash(ballot.hash_payload())
        ballot.id = ballot.content_hash

        try:
            await self.ballots.insert_ballot(ballot)
        except DoubleVoteAttempt:
            logger.warning("Concurrent double vote by %s on %s rejected", voter_id, target_id)
            raise

        logger.info("Ballot accepted for %s", target_id)
        await self._send_confirmation(voter, target, ballot)

        return CastOutcome(state=CastState.ACCEPTED, vote_id=ballot.id, cast_at=cast_at)

    async def _send_confirmation(self, voter: User, target: BallotTarget, ballot: Ballot) -> None:
        """Email the voter their vote ID. Failure does not undo the vote."""
        if self.mailer is None:
            return
        try:
            await self.mailer.send_message(
                voter.email,
                "POLLARA: Vote cast successfully",
                f"<p>Hi {voter.full_name or voter.email}</p>"
                f"<p>You voted in {target.title} at {ballot.cast_at:%Y-%m-%d %H:%M} UTC. "
                "You can use your VoteID below to verify your vote:</p>"
                f"<em>{ballot.id}</em>"
                '<p>Best regards,<span style="display:block;">Pollara.</span></p>'
            )
        except DeliveryFailed as e:
            # Log the error but don't fail the vote
            logger.warning("Vote confirmation delivery failed: %s", e)

    async def verify_vote(self, vote_id: str) -> dict:
        """
        Check that a stored ballot has not been altered since it was cast.

        Raises:
            VoteNotFound: if no ballot has this ID
        """
        ballot = await self.ballots.get_ballot(vote_id)
        if not ballot:
            raise VoteNotFound()

        recomputed = content_hash(ballot.hash_payload())
        intact = recomputed == ballot.content_hash == ballot.id

        if not intact:
            logger.error("Ballot %s failed integrity verification", vote_id)

        return {
            "vote_id": ballot.id,
            "target_id": ballot.target_id,
            "status": "success" if intact else "failed",
            "message": (
                "Vote verification successful"
                if intact else "Vote verification failed. Vote compromised!"
            ),
            "cast_at": ballot.cast_at,
        }

    async def has_voted(self, voter: User, target_id: str) -> bool:
        return await self.ballots.ballot_exists(voter.id, target_id)
