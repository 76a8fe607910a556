"""Tests for the Vote Ledger (tagtrust.services.votes).

Covers one-vote-per-voter semantics, last-write-wins direction changes,
confidence re-derivation, and the submitter's received-vote counters.
"""

import uuid

import pytest
from sqlalchemy import func, select

from tagtrust.errors import AlreadyDecidedError, NotFoundError, SelfVoteError, ValidationError
from tagtrust.models import Vote
from tagtrust.services import moderation, reputation
from tagtrust.services.tags import submit_tag
from tagtrust.services.votes import cast_vote


@pytest.fixture
def pending_tag(db_session, submitter):
    async def _make(content_id: str = "photo-1", name: str = "Jane Doe"):
        return await submit_tag(
            db_session, content_id=content_id, entity_name=name, submitter_id=submitter.id
        )

    return _make


async def _vote_rows(db_session, tag_id) -> int:
    result = await db_session.execute(
        select(func.count()).select_from(Vote).where(Vote.tag_id == tag_id)
    )
    return result.scalar_one()


class TestCastVote:
    async def test_first_upvote(self, db_session, submitter, make_user, pending_tag):
        voter, _ = await make_user()
        tag = await pending_tag()

        result = await cast_vote(db_session, tag.id, voter.id, "up")

        assert result.previous_direction is None
        assert result.changed is True
        assert result.tag.upvote_count == 1
        assert result.tag.downvote_count == 0
        assert result.tag.confidence == pytest.approx(2 / 3)

        state = await reputation.current_state(db_session, submitter.id)
        assert state.upvotes_received == 1

    async def test_revote_changes_direction(self, db_session, submitter, make_user, pending_tag):
        voter, _ = await make_user()
        tag = await pending_tag()

        await cast_vote(db_session, tag.id, voter.id, "up")
        result = await cast_vote(db_session, tag.id, voter.id, "down")

        assert result.previous_direction == "up"
        assert result.tag.upvote_count == 0
        assert result.tag.downvote_count == 1
        assert result.tag.confidence == pytest.approx(1 / 3)
        assert await _vote_rows(db_session, tag.id) == 1

        state = await reputation.current_state(db_session, submitter.id)
        assert (state.upvotes_received, state.downvotes_received) == (0, 1)

    async def test_same_direction_is_noop(self, db_session, submitter, make_user, pending_tag):
        voter, _ = await make_user()
        tag = await pending_tag()

        await cast_vote(db_session, tag.id, voter.id, "up")
        before = await reputation.current_state(db_session, submitter.id)
        result = await cast_vote(db_session, tag.id, voter.id, "up")
        after = await reputation.current_state(db_session, submitter.id)

        assert result.changed is False
        assert result.tag.upvote_count == 1
        assert after.event_count == before.event_count

    async def test_counts_match_vote_rows(self, db_session, make_user, pending_tag):
        tag = await pending_tag()
        directions = ["up", "up", "down", "up", "down"]
        for direction in directions:
            voter, _ = await make_user()
            result = await cast_vote(db_session, tag.id, voter.id, direction)

        assert result.tag.upvote_count == 3
        assert result.tag.downvote_count == 2
        assert result.tag.confidence == pytest.approx(4 / 7)
        assert await _vote_rows(db_session, tag.id) == len(directions)

    async def test_self_vote_forbidden(self, db_session, submitter, pending_tag):
        tag = await pending_tag()
        with pytest.raises(SelfVoteError):
            await cast_vote(db_session, tag.id, submitter.id, "up")

    async def test_vote_on_approved_tag_allowed(
        self, db_session, submitter, admin, make_user, pending_tag
    ):
        voter, _ = await make_user()
        tag = await pending_tag()
        await moderation.approve_tag(db_session, tag.id, admin.id)

        result = await cast_vote(db_session, tag.id, voter.id, "down")
        assert result.tag.downvote_count == 1

        state = await reputation.current_state(db_session, submitter.id)
        # 0.7 * 1 + 0.3 * 0
        assert state.reputation_score == 0.7

    async def test_vote_on_rejected_tag_refused(self, db_session, admin, make_user, pending_tag):
        voter, _ = await make_user()
        tag = await pending_tag()
        await moderation.reject_tag(db_session, tag.id, admin.id)

        with pytest.raises(AlreadyDecidedError):
            await cast_vote(db_session, tag.id, voter.id, "up")

    async def test_bad_direction(self, db_session, make_user, pending_tag):
        voter, _ = await make_user()
        tag = await pending_tag()
        with pytest.raises(ValidationError):
            await cast_vote(db_session, tag.id, voter.id, "sideways")

    async def test_unknown_tag(self, db_session, make_user):
        voter, _ = await make_user()
        with pytest.raises(NotFoundError):
            await cast_vote(db_session, uuid.uuid4(), voter.id, "up")
