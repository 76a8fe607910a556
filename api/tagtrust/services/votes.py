"""Vote Ledger: one vote per (tag, voter), last write wins on direction.

Votes on a tag are serialized by locking the tag row, and the vote row
itself is protected by the (tag_id, voter_id) unique constraint: a voter's
second concurrent first-vote collides, is retried as an update, and the
ledger never holds two rows for the pair.

Tag vote counts and confidence are re-derived from the votes table on every
write rather than incremented, so the denormalized values are always a
faithful cache.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tagtrust.errors import AlreadyDecidedError, SelfVoteError, ValidationError
from tagtrust.metrics import votes_recorded
from tagtrust.models.base import utcnow
from tagtrust.models.tag import Tag, TagStatus
from tagtrust.models.vote import VOTE_UNIQUE_CONSTRAINT, Vote, VoteDirection
from tagtrust.services import reputation
from tagtrust.services.confidence import confidence
from tagtrust.services.reputation import EventType
from tagtrust.services.tags import get_tag

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VoteResult:
    vote: Vote
    tag: Tag
    previous_direction: Optional[str]

    @property
    def changed(self) -> bool:
        return self.previous_direction != self.vote.direction


async def _find_vote(db: AsyncSession, tag_id: uuid.UUID, voter_id: uuid.UUID) -> Optional[Vote]:
    result = await db.execute(
        select(Vote)
        .where(Vote.tag_id == tag_id, Vote.voter_id == voter_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def recount_tag_votes(db: AsyncSession, tag: Tag) -> Tag:
    """Re-derive a tag's vote counts and confidence from the votes table."""
    rows = await db.execute(
        select(Vote.direction, func.count())
        .where(Vote.tag_id == tag.id)
        .group_by(Vote.direction)
    )
    counts = {direction: count for direction, count in rows.all()}
    tag.upvote_count = counts.get(VoteDirection.up.value, 0)
    tag.downvote_count = counts.get(VoteDirection.down.value, 0)
    tag.confidence = confidence(tag.upvote_count, tag.downvote_count)
    return tag


async def cast_vote(
    db: AsyncSession, tag_id: uuid.UUID, voter_id: uuid.UUID, direction: str
) -> VoteResult:
    """Record or overwrite a voter's vote on a tag.

    Re-voting in the same direction is a no-op. A changed or new vote
    recounts the tag and appends a vote_received event for the submitter.

    Raises:
        ValidationError: direction is not "up" or "down".
        NotFoundError: No such tag.
        SelfVoteError: The voter submitted the tag.
        AlreadyDecidedError: The tag was rejected; rejected tags take no votes.
    """
    try:
        direction = VoteDirection(direction).value
    except ValueError:
        raise ValidationError("direction must be 'up' or 'down'") from None

    # Row lock on the tag serializes all vote writes for it
    tag = await get_tag(db, tag_id, lock=True)
    if tag.submitter_id == voter_id:
        raise SelfVoteError("Cannot vote on your own tag")
    if tag.status == TagStatus.rejected.value:
        raise AlreadyDecidedError("Cannot vote on a rejected tag")

    vote = await _find_vote(db, tag_id, voter_id)
    previous = vote.direction if vote is not None else None

    if vote is None:
        vote = Vote(tag_id=tag_id, voter_id=voter_id, direction=direction)
        try:
            async with db.begin_nested():
                db.add(vote)
                await db.flush()
        except IntegrityError as exc:
            if VOTE_UNIQUE_CONSTRAINT not in str(exc.orig) and "votes.tag_id" not in str(exc.orig):
                raise
            # Lost a race with the same voter's concurrent first vote
            vote = await _find_vote(db, tag_id, voter_id)
            if vote is None:
                raise
            previous = vote.direction

    if previous == direction:
        return VoteResult(vote=vote, tag=tag, previous_direction=previous)

    vote.direction = direction
    vote.updated_at = utcnow()
    await db.flush()
    await recount_tag_votes(db, tag)

    await reputation.append_event(
        db,
        tag.submitter_id,
        EventType.vote_received,
        {
            "tag_id": str(tag.id),
            "voter_id": str(voter_id),
            "direction": direction,
            "previous_direction": previous,
        },
    )

    votes_recorded.labels(direction=direction, kind="new" if previous is None else "changed").inc()
    log.info(
        "vote_recorded",
        tag_id=str(tag.id),
        voter_id=str(voter_id),
        direction=direction,
        previous_direction=previous,
        confidence=tag.confidence,
    )
    return VoteResult(vote=vote, tag=tag, previous_direction=previous)
