"""Tag submission, listing and withdrawal.

POST   /api/v1/tags            -- submit a tag (pending, or approved for trusted users)
GET    /api/v1/tags?contentId= -- approved tags (+ the caller's own pending ones)
DELETE /api/v1/tags/{tag_id}   -- withdraw one's own pending tag
"""

import uuid

from fastapi import APIRouter, Query

from tagtrust.dependencies import CurrentUser, DbSession, OptionalUser
from tagtrust.middleware.rate_limiter import ReadRateLimit, WriteRateLimit
from tagtrust.schemas.tag import TagCreate, TagListResponse, TagResponse, TagSubmitted, TagWithdrawn
from tagtrust.services.tags import list_tags_for_content, submit_tag, withdraw_tag

router = APIRouter(prefix="/api/v1", tags=["tags"])


@router.post("/tags", response_model=TagSubmitted, status_code=201)
async def create_tag(
    body: TagCreate,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> TagSubmitted:
    """Submit a claim that an entity appears in a content item.

    Returns 201 with status "pending", or "approved" when the caller's trust
    level grants auto-approval. 409 on a duplicate, 422 on an empty name or
    malformed attrs.
    """
    tag = await submit_tag(
        db,
        content_id=body.content_id,
        entity_name=body.entity_name,
        submitter_id=user.id,
        attrs=body.attrs,
    )
    await db.commit()
    return TagSubmitted(tag_id=tag.id, status=tag.status)


@router.get("/tags", response_model=TagListResponse)
async def list_tags(
    user: OptionalUser,
    db: DbSession,
    _rate: ReadRateLimit,
    content_id: str = Query(alias="contentId", min_length=1, max_length=255),
    include_pending: bool = Query(default=True, alias="includePending"),
) -> TagListResponse:
    """List a content item's tags as visible to the caller (anonymous allowed)."""
    tags = await list_tags_for_content(db, content_id, user, include_pending=include_pending)
    return TagListResponse(
        content_id=content_id,
        tags=[TagResponse.model_validate(tag) for tag in tags],
    )


@router.delete("/tags/{tag_id}", response_model=TagWithdrawn)
async def delete_tag(
    tag_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> TagWithdrawn:
    """Withdraw one's own pending tag. 403 if not the submitter, 409 if decided."""
    await withdraw_tag(db, tag_id, user.id)
    await db.commit()
    return TagWithdrawn(tag_id=tag_id)
