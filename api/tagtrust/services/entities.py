"""Entity Directory: canonical entities promoted from agreeing approved tags.

A tag's entity is either unresolved free text (entity_id is NULL) or a
resolved directory entry. A normalized name is promoted once approved tags
from at least `entity_promotion_threshold` distinct submitters agree on it;
every approved tag carrying that name is then linked to the entity, and
later submissions with the same normalized name resolve at submit time.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tagtrust.config import settings
from tagtrust.models.entity import Entity
from tagtrust.models.tag import Tag, TagStatus

log = structlog.get_logger(__name__)


async def resolve_entity(db: AsyncSession, normalized_name: str) -> Optional[Entity]:
    result = await db.execute(select(Entity).where(Entity.normalized_name == normalized_name))
    return result.scalar_one_or_none()


async def get_entity(db: AsyncSession, entity_id: uuid.UUID) -> Optional[Entity]:
    result = await db.execute(select(Entity).where(Entity.id == entity_id))
    return result.scalar_one_or_none()


async def promote_if_agreed(
    db: AsyncSession, normalized_name: str, display_name: str
) -> Optional[Entity]:
    """Promote a normalized name into the directory once enough submitters agree.

    Called after a tag is approved, inside the same transaction. Idempotent:
    an existing entity just has its links and approved count refreshed.

    Returns:
        The entity, or None while agreement is below the threshold.
    """
    agreement = await db.execute(
        select(
            func.count(func.distinct(Tag.submitter_id)),
            func.count(Tag.id),
        ).where(
            Tag.normalized_name == normalized_name,
            Tag.status == TagStatus.approved.value,
        )
    )
    submitters, approved_count = agreement.one()
    if submitters < settings.entity_promotion_threshold:
        return None

    entity = await resolve_entity(db, normalized_name)
    created = False
    if entity is None:
        entity = Entity(canonical_name=display_name, normalized_name=normalized_name)
        try:
            async with db.begin_nested():
                db.add(entity)
                await db.flush()
            created = True
        except IntegrityError:
            # Promoted concurrently by another approval
            entity = await resolve_entity(db, normalized_name)
            if entity is None:
                raise

    entity.approved_tag_count = approved_count
    await db.execute(
        update(Tag)
        .where(
            Tag.normalized_name == normalized_name,
            Tag.status == TagStatus.approved.value,
            Tag.entity_id.is_(None),
        )
        .values(entity_id=entity.id)
        .execution_options(synchronize_session=False)
    )
    await db.flush()

    if created:
        log.info(
            "entity_promoted",
            entity_id=str(entity.id),
            canonical_name=entity.canonical_name,
            submitters=submitters,
        )
    return entity


async def search_entities(db: AsyncSession, query: str, limit: int = 20) -> list[Entity]:
    """Prefix search on the normalized name, most-tagged entities first."""
    from tagtrust.services.tags import normalize_entity_name

    prefix = normalize_entity_name(query)
    stmt = select(Entity)
    if prefix:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        stmt = stmt.where(Entity.normalized_name.like(f"{escaped}%", escape="\\"))
    result = await db.execute(
        stmt.order_by(Entity.approved_tag_count.desc(), Entity.normalized_name).limit(limit)
    )
    return list(result.scalars().all())
