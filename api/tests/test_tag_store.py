"""Tests for tag submission, withdrawal and listing (tagtrust.services.tags)."""

import uuid

import pytest
from sqlalchemy import func, select

from tagtrust.errors import (
    AlreadyDecidedError,
    DuplicateError,
    NotFoundError,
    NotOwnerError,
    ValidationError,
)
from tagtrust.models import ReputationEvent, Tag, Vote
from tagtrust.services import moderation, reputation, votes
from tagtrust.services.tags import (
    clean_entity_name,
    list_tags_for_content,
    normalize_entity_name,
    submit_tag,
    validate_attrs,
    withdraw_tag,
)


class TestNormalization:
    def test_case_and_whitespace_fold(self):
        assert normalize_entity_name("  Jane   DOE ") == "jane doe"

    def test_accents_fold(self):
        assert normalize_entity_name("José Núñez") == normalize_entity_name("jose nunez")

    def test_display_form_keeps_case(self):
        assert clean_entity_name("  Jane \t Doe ") == "Jane Doe"


class TestValidateAttrs:
    def test_none_passes_through(self):
        assert validate_attrs(None) is None

    def test_jersey_number_int_is_stringified(self):
        assert validate_attrs({"jersey_number": 23}) == {"jersey_number": "23"}

    def test_team_is_cleaned(self):
        assert validate_attrs({"team": "  Red   Stars "}) == {"team": "Red Stars"}

    def test_empty_values_dropped(self):
        assert validate_attrs({"jersey_number": "", "team": " "}) is None

    @pytest.mark.parametrize(
        "attrs",
        [
            {"jersey_number": "1234"},
            {"jersey_number": "7a"},
            {"jersey_number": True},
            {"team": 12},
            {"team": "x" * 101},
            {"nickname": "JD"},
            ["jersey_number"],
        ],
    )
    def test_malformed_rejected(self, attrs):
        with pytest.raises(ValidationError):
            validate_attrs(attrs)


class TestSubmitTag:
    async def test_new_user_tag_is_pending(self, db_session, submitter):
        tag = await submit_tag(
            db_session, content_id="photo-1", entity_name="Jane Doe", submitter_id=submitter.id
        )
        assert tag.status == "pending"
        assert tag.normalized_name == "jane doe"
        assert tag.confidence == 0.5
        assert tag.decided_at is None

        state = await reputation.current_state(db_session, submitter.id)
        assert state.pending_tags == 1

    async def test_attrs_stored(self, db_session, submitter):
        tag = await submit_tag(
            db_session,
            content_id="photo-1",
            entity_name="Jane Doe",
            submitter_id=submitter.id,
            attrs={"jersey_number": 9, "team": "Lions"},
        )
        assert tag.attrs == {"jersey_number": "9", "team": "Lions"}

    @pytest.mark.parametrize("name", ["", "   ", "\t\n"])
    async def test_empty_name_rejected(self, db_session, submitter, name):
        with pytest.raises(ValidationError):
            await submit_tag(
                db_session, content_id="photo-1", entity_name=name, submitter_id=submitter.id
            )

    async def test_overlong_name_rejected(self, db_session, submitter):
        with pytest.raises(ValidationError):
            await submit_tag(
                db_session,
                content_id="photo-1",
                entity_name="x" * 201,
                submitter_id=submitter.id,
            )

    async def test_duplicate_after_normalization_rejected(self, db_session, submitter):
        await submit_tag(
            db_session, content_id="photo-1", entity_name="Jane Doe", submitter_id=submitter.id
        )
        with pytest.raises(DuplicateError):
            await submit_tag(
                db_session,
                content_id="photo-1",
                entity_name="  jane   DOE",
                submitter_id=submitter.id,
            )

    async def test_same_name_other_content_allowed(self, db_session, submitter):
        await submit_tag(
            db_session, content_id="photo-1", entity_name="Jane Doe", submitter_id=submitter.id
        )
        tag = await submit_tag(
            db_session, content_id="photo-2", entity_name="Jane Doe", submitter_id=submitter.id
        )
        assert tag.status == "pending"

    async def test_other_submitter_same_name_allowed(self, db_session, submitter, make_user):
        other, _ = await make_user()
        await submit_tag(
            db_session, content_id="photo-1", entity_name="Jane Doe", submitter_id=submitter.id
        )
        tag = await submit_tag(
            db_session, content_id="photo-1", entity_name="Jane Doe", submitter_id=other.id
        )
        assert tag.submitter_id == other.id

    async def test_resubmit_after_rejection_allowed(self, db_session, submitter, admin):
        tag = await submit_tag(
            db_session, content_id="photo-1", entity_name="Jane Doe", submitter_id=submitter.id
        )
        await moderation.reject_tag(db_session, tag.id, admin.id, "blurry")
        again = await submit_tag(
            db_session, content_id="photo-1", entity_name="Jane Doe", submitter_id=submitter.id
        )
        assert again.id != tag.id
        assert again.status == "pending"

    async def test_trusted_user_auto_approved(self, db_session, submitter, approved_history):
        await approved_history(submitter, 10)
        state = await reputation.current_state(db_session, submitter.id)
        assert state.auto_approve is True

        tag = await submit_tag(
            db_session, content_id="photo-99", entity_name="John Roe", submitter_id=submitter.id
        )
        assert tag.status == "approved"
        assert tag.decision_source == "auto"
        assert tag.decided_at is not None

        events = await reputation.list_events(db_session, submitter.id)
        assert events[-1].event_type == "tag_approved"
        assert events[-1].metadata_json["approved_by"] == reputation.AUTO_APPROVAL_ACTOR

        after = await reputation.current_state(db_session, submitter.id)
        assert after.approved_tags == 11
        assert after.pending_tags == 0

        queued, total = await moderation.list_pending(db_session)
        assert tag.id not in {t.id for t in queued}
        assert total == 0

    async def test_learning_user_not_auto_approved(
        self, db_session, submitter, approved_history
    ):
        await approved_history(submitter, 4)
        tag = await submit_tag(
            db_session, content_id="photo-99", entity_name="John Roe", submitter_id=submitter.id
        )
        assert tag.status == "pending"


class TestWithdrawTag:
    async def test_withdraw_deletes_tag_and_votes(self, db_session, submitter, make_user):
        voter, _ = await make_user()
        tag = await submit_tag(
            db_session, content_id="photo-1", entity_name="Jane Doe", submitter_id=submitter.id
        )
        await votes.cast_vote(db_session, tag.id, voter.id, "up")
        tag_id = tag.id

        await withdraw_tag(db_session, tag_id, submitter.id)

        assert (await db_session.execute(select(Tag).where(Tag.id == tag_id))).first() is None
        vote_count = await db_session.execute(
            select(func.count()).select_from(Vote).where(Vote.tag_id == tag_id)
        )
        assert vote_count.scalar_one() == 0

        state = await reputation.current_state(db_session, submitter.id)
        assert state.pending_tags == 0
        assert state.upvotes_received == 0

        event = (
            await db_session.execute(
                select(ReputationEvent)
                .where(ReputationEvent.user_id == submitter.id)
                .order_by(ReputationEvent.sequence.desc())
            )
        ).scalars().first()
        assert event.event_type == "tag_withdrawn"
        assert event.metadata_json["upvotes_removed"] == 1

    async def test_withdraw_others_tag_forbidden(self, db_session, submitter, make_user):
        other, _ = await make_user()
        tag = await submit_tag(
            db_session, content_id="photo-1", entity_name="Jane Doe", submitter_id=submitter.id
        )
        with pytest.raises(NotOwnerError):
            await withdraw_tag(db_session, tag.id, other.id)

    async def test_withdraw_decided_tag_refused(self, db_session, submitter, admin):
        tag = await submit_tag(
            db_session, content_id="photo-1", entity_name="Jane Doe", submitter_id=submitter.id
        )
        await moderation.approve_tag(db_session, tag.id, admin.id)
        with pytest.raises(AlreadyDecidedError):
            await withdraw_tag(db_session, tag.id, submitter.id)

    async def test_withdraw_missing_tag(self, db_session, submitter):
        with pytest.raises(NotFoundError):
            await withdraw_tag(db_session, uuid.uuid4(), submitter.id)


class TestListTags:
    async def test_visibility_by_viewer(self, db_session, submitter, admin, make_user):
        other, _ = await make_user()
        approved = await submit_tag(
            db_session, content_id="photo-1", entity_name="Jane Doe", submitter_id=submitter.id
        )
        await moderation.approve_tag(db_session, approved.id, admin.id)
        mine = await submit_tag(
            db_session, content_id="photo-1", entity_name="John Roe", submitter_id=submitter.id
        )
        theirs = await submit_tag(
            db_session, content_id="photo-1", entity_name="Ann Poe", submitter_id=other.id
        )
        rejected = await submit_tag(
            db_session, content_id="photo-1", entity_name="Bob Loe", submitter_id=other.id
        )
        await moderation.reject_tag(db_session, rejected.id, admin.id)

        public = await list_tags_for_content(db_session, "photo-1")
        assert [t.id for t in public] == [approved.id]

        own_view = {t.id for t in await list_tags_for_content(db_session, "photo-1", submitter)}
        assert own_view == {approved.id, mine.id}

        admin_view = {t.id for t in await list_tags_for_content(db_session, "photo-1", admin)}
        assert admin_view == {approved.id, mine.id, theirs.id, rejected.id}

        approved_only = await list_tags_for_content(
            db_session, "photo-1", submitter, include_pending=False
        )
        assert [t.id for t in approved_only] == [approved.id]

    async def test_unknown_content_is_empty(self, db_session):
        assert await list_tags_for_content(db_session, "nope") == []
