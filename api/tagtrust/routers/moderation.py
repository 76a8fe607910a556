"""Admin moderation endpoints: the review queue and decisions on pending tags.

GET  /api/v1/admin/tags                  -- queue (status=pending) or any status filter
GET  /api/v1/admin/tags/stats            -- tag counts per status
POST /api/v1/admin/tags/{tag_id}/approve -- approve a pending tag
POST /api/v1/admin/tags/{tag_id}/reject  -- reject a pending tag
POST /api/v1/admin/tags/batch-approve    -- approve many, each independently

All routes require an admin key.
"""

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Query

from tagtrust.config import settings
from tagtrust.dependencies import AdminUser, DbSession
from tagtrust.errors import ValidationError
from tagtrust.middleware.rate_limiter import ReadRateLimit, WriteRateLimit
from tagtrust.schemas.common import PaginatedResponse
from tagtrust.schemas.moderation import (
    BatchApproveItem,
    BatchApproveRequest,
    BatchApproveResponse,
    QueueStats,
    RejectRequest,
)
from tagtrust.schemas.tag import AdminTagResponse
from tagtrust.services import moderation

router = APIRouter(prefix="/api/v1/admin", tags=["moderation"])


@router.get("/tags", response_model=PaginatedResponse[AdminTagResponse])
async def list_admin_tags(
    admin: AdminUser,
    db: DbSession,
    _rate: ReadRateLimit,
    status: Literal["pending", "approved", "rejected", "all"] = Query(default="pending"),
    limit: int = Query(default=50, ge=1, le=settings.moderation_page_size_max),
    offset: int = Query(default=0, ge=0),
) -> PaginatedResponse[AdminTagResponse]:
    """Moderation queue, lowest confidence first, then oldest.

    Other status filters list decided tags newest first.
    """
    tags, total = await moderation.list_by_status(db, status, limit=limit, offset=offset)
    return PaginatedResponse[AdminTagResponse](
        items=[AdminTagResponse.model_validate(tag) for tag in tags],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/tags/stats", response_model=QueueStats)
async def tag_stats(admin: AdminUser, db: DbSession, _rate: ReadRateLimit) -> QueueStats:
    return QueueStats(**await moderation.queue_stats(db))


@router.post("/tags/batch-approve", response_model=BatchApproveResponse)
async def batch_approve_tags(
    body: BatchApproveRequest,
    admin: AdminUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> BatchApproveResponse:
    """Approve several pending tags; one failure does not block the others."""
    if len(body.tag_ids) > settings.batch_approve_max:
        raise ValidationError(f"At most {settings.batch_approve_max} tags per batch")

    results = await moderation.batch_approve(db, body.tag_ids, admin.id)
    await db.commit()

    items = [
        BatchApproveItem(
            tag_id=r.tag_id, ok=r.ok, status=r.status, error=r.error, detail=r.detail
        )
        for r in results
    ]
    outcomes = {item.tag_id: item.ok for item in items}
    approved = sum(outcomes.values())
    return BatchApproveResponse(
        results=items, approved=approved, failed=len(outcomes) - approved
    )


@router.post("/tags/{tag_id}/approve", response_model=AdminTagResponse)
async def approve_tag(
    tag_id: uuid.UUID,
    admin: AdminUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> AdminTagResponse:
    """Approve a pending tag. 409 if it was already decided."""
    tag = await moderation.approve_tag(db, tag_id, admin.id)
    await db.commit()
    return AdminTagResponse.model_validate(tag)


@router.post("/tags/{tag_id}/reject", response_model=AdminTagResponse)
async def reject_tag(
    tag_id: uuid.UUID,
    admin: AdminUser,
    db: DbSession,
    _rate: WriteRateLimit,
    body: Optional[RejectRequest] = None,
) -> AdminTagResponse:
    """Reject a pending tag, with an optional reason kept for audit."""
    reason = body.reason if body is not None else None
    tag = await moderation.reject_tag(db, tag_id, admin.id, reason)
    await db.commit()
    return AdminTagResponse.model_validate(tag)
