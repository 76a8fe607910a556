from .base import Base
from .user import User
from .entity import Entity
from .tag import DecisionSource, Tag, TagStatus
from .vote import Vote, VoteDirection
from .reputation import ReputationEvent, ReputationRecord

__all__ = [
    "Base",
    "User",
    "Entity",
    "Tag",
    "TagStatus",
    "DecisionSource",
    "Vote",
    "VoteDirection",
    "ReputationRecord",
    "ReputationEvent",
]
