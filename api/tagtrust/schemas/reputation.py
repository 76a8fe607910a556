"""Pydantic schemas for reputation read and override endpoints."""

import uuid
from datetime import datetime
from typing import Any, Optional

from tagtrust.schemas.common import CamelModel
from tagtrust.services.trust import TrustLevel


class ReputationRecordResponse(CamelModel):
    user_id: uuid.UUID
    approved_tags: int = 0
    rejected_tags: int = 0
    pending_tags: int = 0
    upvotes_received: int = 0
    downvotes_received: int = 0
    reputation_score: float = 0.5
    trust_level: TrustLevel = TrustLevel.new
    auto_approve: bool = False
    trust_override: Optional[TrustLevel] = None


class ReputationEventResponse(CamelModel):
    id: uuid.UUID
    sequence: int
    event_type: str
    score_before: float
    score_after: float
    trust_before: str
    trust_after: str
    metadata: dict[str, Any]
    created_at: datetime


class ReputationResponse(CamelModel):
    """Admin view: the live record, its full history, and the replay check."""

    record: ReputationRecordResponse
    events: list[ReputationEventResponse]
    replay_consistent: bool


class TrustOverrideRequest(CamelModel):
    trust_level: Optional[TrustLevel] = None
