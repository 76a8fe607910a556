"""Tag Store: submission, withdrawal and listing of identification tags.

A tag is one user's claim that a named entity appears in a content item.
Moderation-state transitions (services.moderation) are the only mutation;
the only hard delete is the submitter withdrawing a still-pending tag.

Every function here works in the caller's transaction; routers commit.
"""

import re
import unicodedata
import uuid
from typing import Any, Optional

import structlog
from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tagtrust.errors import (
    AlreadyDecidedError,
    ConflictError,
    DuplicateError,
    NotFoundError,
    NotOwnerError,
    ValidationError,
)
from tagtrust.metrics import moderation_decisions, tags_submitted, tags_withdrawn
from tagtrust.models.base import utcnow
from tagtrust.models.tag import ACTIVE_TAG_UNIQUE_INDEX, DecisionSource, Tag, TagStatus
from tagtrust.models.user import User
from tagtrust.models.vote import Vote, VoteDirection
from tagtrust.services import entities, reputation
from tagtrust.services.reputation import AUTO_APPROVAL_ACTOR, EventType

log = structlog.get_logger(__name__)

MAX_ENTITY_NAME_LENGTH = 200
MAX_CONTENT_ID_LENGTH = 255
MAX_TEAM_LENGTH = 100

ACTIVE_STATUSES = (TagStatus.pending.value, TagStatus.approved.value)

_WHITESPACE = re.compile(r"\s+")
_JERSEY_NUMBER = re.compile(r"^\d{1,3}$")
_ALLOWED_ATTRS = frozenset({"jersey_number", "team"})


def clean_entity_name(raw: str) -> str:
    """Trim and collapse internal whitespace; this is the stored display form."""
    return _WHITESPACE.sub(" ", raw or "").strip()


def normalize_entity_name(raw: str) -> str:
    """Normalize an entity name to its matching key.

    Folds case and accents and collapses whitespace, so "  José  DOE" and
    "jose doe" compare equal. This is the single point of name normalization:
    duplicate detection and the Entity Directory both key on it.
    """
    decomposed = unicodedata.normalize("NFKD", clean_entity_name(raw))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()[:MAX_ENTITY_NAME_LENGTH]


def validate_attrs(attrs: Optional[dict[str, Any]]) -> Optional[dict[str, str]]:
    """Validate the optional structured attributes of a tag.

    Accepts `jersey_number` (1-3 digits, int or str) and `team` (non-empty,
    at most 100 characters). Empty values are dropped.

    Raises:
        ValidationError: Unknown keys, wrong types or bad formats.
    """
    if attrs is None:
        return None
    if not isinstance(attrs, dict):
        raise ValidationError("attrs must be an object")

    unknown = set(attrs) - _ALLOWED_ATTRS
    if unknown:
        raise ValidationError(f"Unknown attrs: {sorted(unknown)}")

    cleaned: dict[str, str] = {}
    jersey = attrs.get("jersey_number")
    if jersey is not None and jersey != "":
        if isinstance(jersey, bool) or not isinstance(jersey, (int, str)):
            raise ValidationError("jersey_number must be a string or integer")
        jersey = str(jersey).strip()
        if not _JERSEY_NUMBER.match(jersey):
            raise ValidationError("jersey_number must be 1-3 digits")
        cleaned["jersey_number"] = jersey

    team = attrs.get("team")
    if team is not None:
        if not isinstance(team, str):
            raise ValidationError("team must be a string")
        team = clean_entity_name(team)
        if len(team) > MAX_TEAM_LENGTH:
            raise ValidationError(f"team must be at most {MAX_TEAM_LENGTH} characters")
        if team:
            cleaned["team"] = team

    return cleaned or None


async def get_tag(db: AsyncSession, tag_id: uuid.UUID, *, lock: bool = False) -> Tag:
    """Load a tag by id, refreshed from the database.

    Raises:
        NotFoundError: No tag with this id.
    """
    stmt = select(Tag).where(Tag.id == tag_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt.execution_options(populate_existing=True))
    tag = result.scalar_one_or_none()
    if tag is None:
        raise NotFoundError("Tag not found")
    return tag


async def submit_tag(
    db: AsyncSession,
    *,
    content_id: str,
    entity_name: str,
    submitter_id: uuid.UUID,
    attrs: Optional[dict[str, Any]] = None,
) -> Tag:
    """Record a user's claim that an entity appears in a content item.

    The tag starts `pending`, unless the submitter's current reputation
    record has auto_approve set, in which case it is approved immediately and
    the approval is recorded as coming from the auto-approval policy.

    Raises:
        ValidationError: Empty/whitespace-only name, bad content id or attrs.
        DuplicateError: The submitter already has a pending or approved tag
            for this content item and normalized name.
    """
    display_name = clean_entity_name(entity_name)
    if not display_name:
        raise ValidationError("entityName cannot be empty")
    if len(display_name) > MAX_ENTITY_NAME_LENGTH:
        raise ValidationError(
            f"entityName must be at most {MAX_ENTITY_NAME_LENGTH} characters"
        )
    content_id = (content_id or "").strip()
    if not content_id or len(content_id) > MAX_CONTENT_ID_LENGTH:
        raise ValidationError("contentId is required (at most 255 characters)")
    clean_attrs = validate_attrs(attrs)
    normalized = normalize_entity_name(display_name)

    existing = await db.execute(
        select(Tag.id).where(
            Tag.content_id == content_id,
            Tag.normalized_name == normalized,
            Tag.submitter_id == submitter_id,
            Tag.status.in_(ACTIVE_STATUSES),
        )
    )
    if existing.first() is not None:
        raise DuplicateError("You have already tagged this entity on this content item")

    # Gate on the trust level as of now; past auto-approvals are never revisited
    state = await reputation.current_state(db, submitter_id)
    auto = state.auto_approve

    entity = await entities.resolve_entity(db, normalized)
    tag = Tag(
        content_id=content_id,
        entity_name=display_name,
        normalized_name=normalized,
        attrs=clean_attrs,
        submitter_id=submitter_id,
        entity_id=entity.id if entity is not None else None,
        status=TagStatus.pending.value,
    )
    if auto:
        tag.status = TagStatus.approved.value
        tag.decided_at = utcnow()
        tag.decision_source = DecisionSource.auto.value

    # A concurrent identical submission loses on the partial unique index
    try:
        async with db.begin_nested():
            db.add(tag)
            await db.flush()
    except IntegrityError as exc:
        message = str(exc.orig)
        if ACTIVE_TAG_UNIQUE_INDEX in message or "tags.normalized_name" in message:
            raise DuplicateError(
                "You have already tagged this entity on this content item"
            ) from exc
        raise

    await reputation.append_event(
        db,
        submitter_id,
        EventType.tag_submitted,
        {"tag_id": str(tag.id), "content_id": content_id, "entity_name": display_name},
    )

    if auto:
        await reputation.append_event(
            db,
            submitter_id,
            EventType.tag_approved,
            {
                "tag_id": str(tag.id),
                "entity_name": display_name,
                "approved_by": AUTO_APPROVAL_ACTOR,
                "source": DecisionSource.auto.value,
            },
        )
        promoted = await entities.promote_if_agreed(db, normalized, display_name)
        if promoted is not None:
            tag.entity_id = promoted.id
        moderation_decisions.labels(decision="approved", source="auto").inc()
        log.info(
            "tag_auto_approved",
            tag_id=str(tag.id),
            submitter_id=str(submitter_id),
            trust_level=state.trust_level.value,
        )

    tags_submitted.labels(status=tag.status).inc()
    log.info(
        "tag_submitted",
        tag_id=str(tag.id),
        content_id=content_id,
        submitter_id=str(submitter_id),
        status=tag.status,
    )
    return tag


async def withdraw_tag(db: AsyncSession, tag_id: uuid.UUID, requester_id: uuid.UUID) -> None:
    """Hard-delete the requester's own pending tag and the votes on it.

    The reputation history keeps a tag_withdrawn event, which also removes the
    deleted votes from the submitter's received-vote counters.

    Raises:
        NotFoundError: No such tag.
        NotOwnerError: The requester did not submit the tag.
        AlreadyDecidedError: The tag is no longer pending.
        ConflictError: A moderator decided the tag while we were withdrawing.
    """
    tag = await get_tag(db, tag_id, lock=True)
    if tag.submitter_id != requester_id:
        raise NotOwnerError("You can only withdraw your own tags")
    if tag.status != TagStatus.pending.value:
        raise AlreadyDecidedError(f"Tag is already {tag.status}")

    vote_rows = await db.execute(
        select(Vote.direction, func.count())
        .where(Vote.tag_id == tag_id)
        .group_by(Vote.direction)
    )
    removed = {direction: count for direction, count in vote_rows.all()}
    entity_name = tag.entity_name

    # Delete in dependency order: votes, then the tag (only while still pending)
    await db.execute(delete(Vote).where(Vote.tag_id == tag_id))
    result = await db.execute(
        delete(Tag)
        .where(Tag.id == tag_id, Tag.status == TagStatus.pending.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Tag was decided concurrently; re-fetch its state")
    db.expunge(tag)

    await reputation.append_event(
        db,
        requester_id,
        EventType.tag_withdrawn,
        {
            "tag_id": str(tag_id),
            "entity_name": entity_name,
            "upvotes_removed": removed.get(VoteDirection.up.value, 0),
            "downvotes_removed": removed.get(VoteDirection.down.value, 0),
        },
    )
    tags_withdrawn.inc()
    log.info("tag_withdrawn", tag_id=str(tag_id), submitter_id=str(requester_id))


async def list_tags_for_content(
    db: AsyncSession,
    content_id: str,
    viewer: Optional[User] = None,
    *,
    include_pending: bool = True,
) -> list[Tag]:
    """List tags on a content item as visible to the viewer, oldest first.

    Public callers see approved tags only. An authenticated submitter also
    sees their own pending tags; admins see every tag, rejected included.
    include_pending=False restricts everyone to approved tags.
    """
    stmt = select(Tag).where(Tag.content_id == content_id)
    approved = Tag.status == TagStatus.approved.value

    if not include_pending or viewer is None:
        stmt = stmt.where(approved)
    elif not viewer.is_admin:
        stmt = stmt.where(
            or_(
                approved,
                and_(
                    Tag.status == TagStatus.pending.value,
                    Tag.submitter_id == viewer.id,
                ),
            )
        )

    result = await db.execute(stmt.order_by(Tag.created_at, Tag.id))
    return list(result.scalars().all())
