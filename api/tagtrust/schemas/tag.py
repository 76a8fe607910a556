"""Pydantic schemas for tag submission and listing."""

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import Field

from tagtrust.schemas.common import CamelModel


class TagCreate(CamelModel):
    """Request body for POST /tags.

    Emptiness and attrs format are checked by the Tag Store so that every
    caller, not only HTTP, gets the same ValidationError.
    """

    content_id: str = Field(min_length=1, max_length=255)
    entity_name: str = Field(max_length=500)
    attrs: Optional[dict[str, Any]] = None


class TagSubmitted(CamelModel):
    tag_id: uuid.UUID
    status: Literal["pending", "approved"]


class TagResponse(CamelModel):
    id: uuid.UUID
    content_id: str
    entity_name: str
    attrs: Optional[dict[str, Any]] = None
    entity_id: Optional[uuid.UUID] = None
    submitter_id: uuid.UUID
    status: str
    upvote_count: int
    downvote_count: int
    confidence: float
    created_at: datetime


class AdminTagResponse(TagResponse):
    """Moderator view: adds the decision audit fields."""

    normalized_name: str
    decided_by: Optional[uuid.UUID] = None
    decided_at: Optional[datetime] = None
    decision_source: Optional[str] = None
    rejection_reason: Optional[str] = None


class TagListResponse(CamelModel):
    content_id: str
    tags: list[TagResponse]


class TagWithdrawn(CamelModel):
    tag_id: uuid.UUID
    withdrawn: bool = True
