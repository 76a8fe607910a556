"""Reputation read endpoints and the admin trust override.

GET /api/v1/users/me/reputation                 -- caller's own record
GET /api/v1/admin/users/{user_id}/reputation    -- record + event history + replay check
PUT /api/v1/admin/users/{user_id}/trust-override -- pin or clear a user's trust level
"""

import uuid

import structlog
from fastapi import APIRouter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tagtrust.dependencies import AdminUser, CurrentUser, DbSession
from tagtrust.errors import NotFoundError
from tagtrust.middleware.rate_limiter import ReadRateLimit, WriteRateLimit
from tagtrust.models.user import User
from tagtrust.schemas.reputation import (
    ReputationEventResponse,
    ReputationRecordResponse,
    ReputationResponse,
    TrustOverrideRequest,
)
from tagtrust.services import reputation
from tagtrust.services.reputation import ReputationState

router = APIRouter(prefix="/api/v1", tags=["reputation"])

log = structlog.get_logger(__name__)


def _record_response(user_id: uuid.UUID, state: ReputationState) -> ReputationRecordResponse:
    return ReputationRecordResponse(
        user_id=user_id,
        approved_tags=state.approved_tags,
        rejected_tags=state.rejected_tags,
        pending_tags=state.pending_tags,
        upvotes_received=state.upvotes_received,
        downvotes_received=state.downvotes_received,
        reputation_score=state.reputation_score,
        trust_level=state.trust_level,
        auto_approve=state.auto_approve,
        trust_override=state.trust_override,
    )


async def _require_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


@router.get("/users/me/reputation", response_model=ReputationRecordResponse)
async def get_my_reputation(
    user: CurrentUser, db: DbSession, _rate: ReadRateLimit
) -> ReputationRecordResponse:
    state = await reputation.current_state(db, user.id)
    return _record_response(user.id, state)


@router.get("/admin/users/{user_id}/reputation", response_model=ReputationResponse)
async def get_user_reputation(
    user_id: uuid.UUID,
    admin: AdminUser,
    db: DbSession,
    _rate: ReadRateLimit,
) -> ReputationResponse:
    """Full reputation view for moderators.

    Users with no reputation-affecting activity get the neutral record and
    an empty history. replayConsistent reports whether replaying the event
    history reproduces the stored record.
    """
    await _require_user(db, user_id)
    try:
        live, replayed = await reputation.reconcile_user(db, user_id)
        consistent = live == replayed
    except ValueError as exc:
        live = await reputation.current_state(db, user_id)
        consistent = False
        log.warning("reputation_replay_failed", user_id=str(user_id), error=str(exc))
    events = await reputation.list_events(db, user_id)
    return ReputationResponse(
        record=_record_response(user_id, live),
        events=[
            ReputationEventResponse(
                id=event.id,
                sequence=event.sequence,
                event_type=event.event_type,
                score_before=event.score_before,
                score_after=event.score_after,
                trust_before=event.trust_before,
                trust_after=event.trust_after,
                metadata=event.metadata_json or {},
                created_at=event.created_at,
            )
            for event in events
        ],
        replay_consistent=consistent,
    )


@router.put("/admin/users/{user_id}/trust-override", response_model=ReputationRecordResponse)
async def put_trust_override(
    user_id: uuid.UUID,
    body: TrustOverrideRequest,
    admin: AdminUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> ReputationRecordResponse:
    """Pin a user's trust level (null clears the pin and re-derives it)."""
    await _require_user(db, user_id)
    ledger_update = await reputation.set_trust_override(db, user_id, body.trust_level, admin.id)
    await db.commit()
    log.info(
        "trust_override_changed",
        user_id=str(user_id),
        admin_id=str(admin.id),
        trust_override=body.trust_level.value if body.trust_level else None,
        trust_level=ledger_update.after.trust_level.value,
    )
    return _record_response(user_id, ledger_update.after)
