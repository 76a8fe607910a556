"""Moderation Queue: pending tags ordered for admin review, and decisions on them.

Queue order is deterministic for a given snapshot: lowest confidence first
(the tags voters doubt most), then oldest first, then by id.

A decision is one unit: the conditional state change, the submitter's
reputation event and recompute, and any Entity Directory promotion run in
the caller's transaction. The state change only matches a tag that is still
pending, so of two concurrent decisions on the same tag exactly one
succeeds; the other gets ConflictError and must re-fetch.
"""

import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tagtrust.errors import ConflictError, TagTrustError, TransientError
from tagtrust.metrics import moderation_conflicts, moderation_decisions
from tagtrust.models.base import utcnow
from tagtrust.models.tag import DecisionSource, Tag, TagStatus
from tagtrust.services import entities, reputation
from tagtrust.services.reputation import EventType
from tagtrust.services.tags import get_tag

log = structlog.get_logger(__name__)

QUEUE_ORDER = (Tag.confidence.asc(), Tag.created_at.asc(), Tag.id.asc())

STATUS_FILTERS = ("pending", "approved", "rejected", "all")


async def list_pending(
    db: AsyncSession, *, limit: int = 50, offset: int = 0
) -> tuple[list[Tag], int]:
    """One page of the moderation queue and the total number of pending tags."""
    return await list_by_status(db, TagStatus.pending.value, limit=limit, offset=offset)


async def list_by_status(
    db: AsyncSession, status: str, *, limit: int = 50, offset: int = 0
) -> tuple[list[Tag], int]:
    """Admin listing filtered by status ("all" for every tag).

    Pending tags use the queue order; decided and mixed listings are newest
    first, with id as the tie-breaker.
    """
    stmt = select(Tag)
    count_stmt = select(func.count(Tag.id))
    if status != "all":
        stmt = stmt.where(Tag.status == status)
        count_stmt = count_stmt.where(Tag.status == status)

    if status == TagStatus.pending.value:
        stmt = stmt.order_by(*QUEUE_ORDER)
    else:
        stmt = stmt.order_by(Tag.created_at.desc(), Tag.id.asc())

    result = await db.execute(stmt.limit(limit).offset(offset))
    total = (await db.execute(count_stmt)).scalar_one()
    return list(result.scalars().all()), total


async def queue_stats(db: AsyncSession) -> dict[str, int]:
    rows = await db.execute(select(Tag.status, func.count(Tag.id)).group_by(Tag.status))
    stats = {status.value: 0 for status in TagStatus}
    stats.update({status: count for status, count in rows.all()})
    return stats


async def _decide(
    db: AsyncSession,
    tag_id: uuid.UUID,
    admin_id: uuid.UUID,
    new_status: TagStatus,
    reason: Optional[str] = None,
) -> Tag:
    tag = await get_tag(db, tag_id)
    if tag.status != TagStatus.pending.value:
        moderation_conflicts.inc()
        raise ConflictError(f"Tag is already {tag.status}")

    values = {
        "status": new_status.value,
        "decided_by": admin_id,
        "decided_at": utcnow(),
        "decision_source": DecisionSource.admin.value,
        "updated_at": utcnow(),
    }
    if new_status is TagStatus.rejected:
        values["rejection_reason"] = reason

    # Conditional UPDATE: only a still-pending tag transitions
    result = await db.execute(
        update(Tag)
        .where(Tag.id == tag_id, Tag.status == TagStatus.pending.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        moderation_conflicts.inc()
        raise ConflictError("Tag was decided concurrently; re-fetch its state")
    return tag


async def approve_tag(db: AsyncSession, tag_id: uuid.UUID, admin_id: uuid.UUID) -> Tag:
    """Approve a pending tag and fold the approval into the submitter's reputation.

    Raises:
        NotFoundError: No such tag.
        ConflictError: The tag is not pending (already decided, possibly concurrently).
        TransientError: The reputation update could not complete; do not commit.
    """
    tag = await _decide(db, tag_id, admin_id, TagStatus.approved)

    await reputation.append_event(
        db,
        tag.submitter_id,
        EventType.tag_approved,
        {
            "tag_id": str(tag.id),
            "entity_name": tag.entity_name,
            "approved_by": str(admin_id),
            "source": DecisionSource.admin.value,
        },
    )
    await entities.promote_if_agreed(db, tag.normalized_name, tag.entity_name)

    tag = await get_tag(db, tag_id)
    moderation_decisions.labels(decision="approved", source="admin").inc()
    log.info(
        "tag_approved",
        tag_id=str(tag.id),
        admin_id=str(admin_id),
        submitter_id=str(tag.submitter_id),
    )
    return tag


async def reject_tag(
    db: AsyncSession, tag_id: uuid.UUID, admin_id: uuid.UUID, reason: Optional[str] = None
) -> Tag:
    """Reject a pending tag; the row is kept for audit.

    Raises:
        NotFoundError: No such tag.
        ConflictError: The tag is not pending.
        TransientError: The reputation update could not complete; do not commit.
    """
    tag = await _decide(db, tag_id, admin_id, TagStatus.rejected, reason)

    await reputation.append_event(
        db,
        tag.submitter_id,
        EventType.tag_rejected,
        {
            "tag_id": str(tag.id),
            "entity_name": tag.entity_name,
            "rejected_by": str(admin_id),
            "reason": reason,
        },
    )

    tag = await get_tag(db, tag_id)
    moderation_decisions.labels(decision="rejected", source="admin").inc()
    log.info(
        "tag_rejected",
        tag_id=str(tag.id),
        admin_id=str(admin_id),
        submitter_id=str(tag.submitter_id),
        reason=reason,
    )
    return tag


@dataclass(frozen=True)
class BatchItemResult:
    tag_id: uuid.UUID
    ok: bool
    status: Optional[str] = None
    error: Optional[str] = None
    detail: Optional[str] = None


async def batch_approve(
    db: AsyncSession, tag_ids: Sequence[uuid.UUID], admin_id: uuid.UUID
) -> list[BatchItemResult]:
    """Approve several tags, each in its own SAVEPOINT.

    One tag's failure rolls back only that tag's state change, event and
    recompute; the others stand. A database error on one tag is reported as
    a transient failure for that id. Repeated ids are decided once and their
    first result is echoed at every position.
    """
    results: list[BatchItemResult] = []
    decided: dict[uuid.UUID, BatchItemResult] = {}
    for tag_id in tag_ids:
        if tag_id in decided:
            results.append(decided[tag_id])
            continue
        try:
            async with db.begin_nested():
                tag = await approve_tag(db, tag_id, admin_id)
        except TagTrustError as exc:
            item = BatchItemResult(tag_id=tag_id, ok=False, error=exc.code, detail=exc.detail)
        except SQLAlchemyError as exc:
            log.warning(
                "batch_approve_item_failed",
                tag_id=str(tag_id),
                admin_id=str(admin_id),
                error=str(exc),
            )
            item = BatchItemResult(
                tag_id=tag_id,
                ok=False,
                error=TransientError.code,
                detail="Database error while approving this tag; retry it",
            )
        else:
            item = BatchItemResult(tag_id=tag_id, ok=True, status=tag.status)
        decided[tag_id] = item
        results.append(item)

    log.info(
        "batch_approve_completed",
        admin_id=str(admin_id),
        requested=len(decided),
        approved=sum(1 for r in decided.values() if r.ok),
    )
    return results
