"""
SQLAlchemy database models.
"""
from pollara.models.target import BallotTarget, TargetKind
from pollara.models.ballot import Ballot
from pollara.models.user import User

__all__ = [
    "BallotTarget",
    "TargetKind",
    "Ballot",
    "User",
]
