"""Vote submission endpoint for tags.

POST /api/v1/tags/{tag_id}/votes -- cast or change an up/down vote on a tag
"""

import uuid

from fastapi import APIRouter

from tagtrust.dependencies import CurrentUser, DbSession
from tagtrust.middleware.rate_limiter import WriteRateLimit
from tagtrust.schemas.vote import VoteCreate, VoteResponse
from tagtrust.services.votes import cast_vote

router = APIRouter(prefix="/api/v1", tags=["votes"])


@router.post("/tags/{tag_id}/votes", response_model=VoteResponse)
async def vote_on_tag(
    tag_id: uuid.UUID,
    body: VoteCreate,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> VoteResponse:
    """Cast an upvote or downvote on a tag.

    Validation rules enforced:
    - Tag must exist (404)
    - Cannot vote on your own tag (403)
    - Rejected tags take no votes (409)

    Voting again overwrites the previous direction; the ledger keeps one
    vote per voter per tag and the tag's confidence is re-derived.
    """
    result = await cast_vote(db, tag_id, user.id, body.direction)
    await db.commit()

    return VoteResponse(
        id=result.vote.id,
        tag_id=result.vote.tag_id,
        voter_id=result.vote.voter_id,
        direction=result.vote.direction,
        previous_direction=result.previous_direction,
        changed=result.changed,
        upvote_count=result.tag.upvote_count,
        downvote_count=result.tag.downvote_count,
        confidence=result.tag.confidence,
        updated_at=result.vote.updated_at,
    )
