"""Pydantic schemas for voting on tags."""

import uuid
from datetime import datetime
from typing import Literal, Optional

from tagtrust.schemas.common import CamelModel


class VoteCreate(CamelModel):
    direction: Literal["up", "down"]


class VoteResponse(CamelModel):
    """The voter's standing vote and the tag's re-derived counts."""

    id: uuid.UUID
    tag_id: uuid.UUID
    voter_id: uuid.UUID
    direction: str
    previous_direction: Optional[str] = None
    changed: bool
    upvote_count: int
    downvote_count: int
    confidence: float
    updated_at: datetime
