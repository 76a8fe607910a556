"""Pydantic schemas for the admin moderation surface."""

import uuid
from typing import Optional

from pydantic import Field

from tagtrust.schemas.common import CamelModel


class RejectRequest(CamelModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class BatchApproveRequest(CamelModel):
    tag_ids: list[uuid.UUID] = Field(min_length=1)


class BatchApproveItem(CamelModel):
    tag_id: uuid.UUID
    ok: bool
    status: Optional[str] = None
    error: Optional[str] = None
    detail: Optional[str] = None


class BatchApproveResponse(CamelModel):
    results: list[BatchApproveItem]
    approved: int
    failed: int


class QueueStats(CamelModel):
    pending: int
    approved: int
    rejected: int
