"""TagTrust Pydantic schemas package.

Re-exports request and response schemas for convenient importing:

    from tagtrust.schemas import TagCreate, TagResponse, VoteCreate, ...
"""

from tagtrust.schemas.auth import APIKeyCreate, APIKeyResponse
from tagtrust.schemas.common import ErrorResponse, PaginatedResponse
from tagtrust.schemas.entity import EntityResponse
from tagtrust.schemas.moderation import (
    BatchApproveItem,
    BatchApproveRequest,
    BatchApproveResponse,
    QueueStats,
    RejectRequest,
)
from tagtrust.schemas.reputation import (
    ReputationEventResponse,
    ReputationRecordResponse,
    ReputationResponse,
    TrustOverrideRequest,
)
from tagtrust.schemas.tag import (
    AdminTagResponse,
    TagCreate,
    TagListResponse,
    TagResponse,
    TagSubmitted,
    TagWithdrawn,
)
from tagtrust.schemas.vote import VoteCreate, VoteResponse

__all__ = [
    # Tag
    "TagCreate",
    "TagSubmitted",
    "TagResponse",
    "AdminTagResponse",
    "TagListResponse",
    "TagWithdrawn",
    # Vote
    "VoteCreate",
    "VoteResponse",
    # Moderation
    "RejectRequest",
    "BatchApproveRequest",
    "BatchApproveItem",
    "BatchApproveResponse",
    "QueueStats",
    # Reputation
    "ReputationRecordResponse",
    "ReputationEventResponse",
    "ReputationResponse",
    "TrustOverrideRequest",
    # Entity
    "EntityResponse",
    # Auth
    "APIKeyCreate",
    "APIKeyResponse",
    # Common
    "ErrorResponse",
    "PaginatedResponse",
]
