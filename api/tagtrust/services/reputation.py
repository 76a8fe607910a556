"""Reputation Ledger and Event Log.

append_event is the only write path into reputation history. It folds one
event into the user's ReputationRecord and appends the ReputationEvent in
the caller's transaction, so a moderation decision and the reputation update
it causes commit or roll back together.

The fold (apply_event) is a pure function shared by the live path and by
replay(), which is what makes the record a rebuildable projection: replaying
a user's events in sequence order from ReputationState() yields a state equal,
field for field, to the live record.

Design notes:
- Per-user serialization: the record row is read FOR UPDATE (a row lock on
  PostgreSQL) and carries a version counter, and events carry a per-user
  sequence with a unique constraint. A writer that loses a race fails with
  StaleDataError or IntegrityError instead of overwriting.
- Each attempt runs inside a SAVEPOINT; contention rolls back only the
  attempt, which is retried with exponential backoff. When attempts are
  exhausted, TransientError propagates and the caller must not commit.
- Different users never share a row, so their updates proceed in parallel.
"""

import asyncio
import dataclasses
import enum
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from tagtrust.config import settings
from tagtrust.errors import TransientError
from tagtrust.metrics import (
    reputation_recompute_failures,
    reputation_recompute_retries,
    trust_level_transitions,
)
from tagtrust.models.reputation import ReputationEvent, ReputationRecord
from tagtrust.services.trust import (
    NEUTRAL_PRIOR,
    TrustLevel,
    classify_trust,
    effective_trust_level,
    is_auto_approve,
    reputation_score,
)

log = structlog.get_logger(__name__)

AUTO_APPROVAL_ACTOR = "auto-approval policy"


class EventType(str, enum.Enum):
    tag_submitted = "tag_submitted"
    tag_approved = "tag_approved"
    tag_rejected = "tag_rejected"
    tag_withdrawn = "tag_withdrawn"
    vote_received = "vote_received"
    trust_override_set = "trust_override_set"
    trust_override_cleared = "trust_override_cleared"


@dataclass(frozen=True)
class ReputationState:
    """Value form of a ReputationRecord, used by the fold and by replay."""

    approved_tags: int = 0
    rejected_tags: int = 0
    pending_tags: int = 0
    upvotes_received: int = 0
    downvotes_received: int = 0
    reputation_score: float = NEUTRAL_PRIOR
    trust_level: TrustLevel = TrustLevel.new
    auto_approve: bool = False
    trust_override: Optional[TrustLevel] = None
    event_count: int = 0

    @property
    def decided_tags(self) -> int:
        return self.approved_tags + self.rejected_tags

    @classmethod
    def from_record(cls, record: ReputationRecord) -> "ReputationState":
        return cls(
            approved_tags=record.approved_tags,
            rejected_tags=record.rejected_tags,
            pending_tags=record.pending_tags,
            upvotes_received=record.upvotes_received,
            downvotes_received=record.downvotes_received,
            reputation_score=record.reputation_score,
            trust_level=TrustLevel(record.trust_level),
            auto_approve=record.auto_approve,
            trust_override=TrustLevel(record.trust_override) if record.trust_override else None,
            event_count=record.event_count,
        )

    def write_to(self, record: ReputationRecord) -> None:
        record.approved_tags = self.approved_tags
        record.rejected_tags = self.rejected_tags
        record.pending_tags = self.pending_tags
        record.upvotes_received = self.upvotes_received
        record.downvotes_received = self.downvotes_received
        record.reputation_score = self.reputation_score
        record.trust_level = self.trust_level.value
        record.auto_approve = self.auto_approve
        record.trust_override = self.trust_override.value if self.trust_override else None
        record.event_count = self.event_count


def derive(state: ReputationState) -> ReputationState:
    """Recompute score, trust level and auto-approve from the counters."""
    score = reputation_score(
        state.approved_tags,
        state.rejected_tags,
        state.upvotes_received,
        state.downvotes_received,
    )
    level = effective_trust_level(
        classify_trust(score, state.decided_tags), state.trust_override
    )
    return dataclasses.replace(
        state,
        reputation_score=score,
        trust_level=level,
        auto_approve=is_auto_approve(level),
    )


def _vote_deltas(direction: Optional[str]) -> tuple[int, int]:
    if direction == "up":
        return 1, 0
    if direction == "down":
        return 0, 1
    return 0, 0


def apply_event(
    state: ReputationState, event_type: str, metadata: Optional[dict[str, Any]] = None
) -> ReputationState:
    """Fold one event into a state. Pure; shared by the live path and replay.

    Raises:
        ValueError: On an unknown event type or a counter that would go
            negative (the event history is inconsistent).
    """
    metadata = metadata or {}
    event_type = EventType(event_type)
    changes: dict[str, Any] = {}

    if event_type is EventType.tag_submitted:
        changes["pending_tags"] = state.pending_tags + 1
    elif event_type is EventType.tag_approved:
        changes["pending_tags"] = state.pending_tags - 1
        changes["approved_tags"] = state.approved_tags + 1
    elif event_type is EventType.tag_rejected:
        changes["pending_tags"] = state.pending_tags - 1
        changes["rejected_tags"] = state.rejected_tags + 1
    elif event_type is EventType.tag_withdrawn:
        changes["pending_tags"] = state.pending_tags - 1
        changes["upvotes_received"] = (
            state.upvotes_received - int(metadata.get("upvotes_removed", 0))
        )
        changes["downvotes_received"] = (
            state.downvotes_received - int(metadata.get("downvotes_removed", 0))
        )
    elif event_type is EventType.vote_received:
        up_new, down_new = _vote_deltas(metadata.get("direction"))
        up_old, down_old = _vote_deltas(metadata.get("previous_direction"))
        changes["upvotes_received"] = state.upvotes_received + up_new - up_old
        changes["downvotes_received"] = state.downvotes_received + down_new - down_old
    elif event_type is EventType.trust_override_set:
        changes["trust_override"] = TrustLevel(metadata["trust_level"])
    elif event_type is EventType.trust_override_cleared:
        changes["trust_override"] = None

    for name, value in changes.items():
        if isinstance(value, int) and value < 0:
            raise ValueError(f"{event_type.value} would make {name} negative")

    changes["event_count"] = state.event_count + 1
    return derive(dataclasses.replace(state, **changes))


def replay(events: Iterable[ReputationEvent]) -> ReputationState:
    """Rebuild a user's state from their events, which must be in sequence order."""
    state = ReputationState()
    for event in events:
        state = apply_event(state, event.event_type, event.metadata_json)
    return state


@dataclass(frozen=True)
class LedgerUpdate:
    event: ReputationEvent
    before: ReputationState
    after: ReputationState


async def load_record(
    db: AsyncSession, user_id: uuid.UUID, *, lock: bool = False
) -> Optional[ReputationRecord]:
    """Fetch a user's record, optionally FOR UPDATE, always refreshed from the DB."""
    stmt = select(ReputationRecord).where(ReputationRecord.user_id == user_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def current_state(db: AsyncSession, user_id: uuid.UUID) -> ReputationState:
    """Read-only view; users without a record get the neutral initial state."""
    record = await load_record(db, user_id)
    if record is None:
        return ReputationState()
    return ReputationState.from_record(record)


async def list_events(db: AsyncSession, user_id: uuid.UUID) -> list[ReputationEvent]:
    result = await db.execute(
        select(ReputationEvent)
        .where(ReputationEvent.user_id == user_id)
        .order_by(ReputationEvent.sequence)
    )
    return list(result.scalars().all())


async def recompute(db: AsyncSession, user_id: uuid.UUID) -> ReputationState:
    """Replay the user's full event history from the initial state."""
    return replay(await list_events(db, user_id))


async def _fold_and_append(
    db: AsyncSession,
    user_id: uuid.UUID,
    event_type: EventType,
    metadata: dict[str, Any],
) -> LedgerUpdate:
    record = await load_record(db, user_id, lock=True)
    if record is None:
        # Created lazily on the user's first reputation-affecting event
        record = ReputationRecord(user_id=user_id)
        db.add(record)
        await db.flush()
        before = ReputationState()
    else:
        before = ReputationState.from_record(record)

    after = apply_event(before, event_type, metadata)
    after.write_to(record)

    event = ReputationEvent(
        user_id=user_id,
        sequence=after.event_count,
        event_type=event_type.value,
        score_before=before.reputation_score,
        score_after=after.reputation_score,
        trust_before=before.trust_level.value,
        trust_after=after.trust_level.value,
        metadata_json=metadata,
    )
    db.add(event)
    await db.flush()
    return LedgerUpdate(event=event, before=before, after=after)


async def append_event(
    db: AsyncSession,
    user_id: uuid.UUID,
    event_type: EventType,
    metadata: Optional[dict[str, Any]] = None,
) -> LedgerUpdate:
    """Append one event for a user and fold it into their record.

    Runs in the caller's transaction; the caller commits. Contention on the
    user's record is retried with exponential backoff inside a SAVEPOINT.

    Args:
        db: Async SQLAlchemy session (caller manages commit).
        user_id: The user whose reputation the event affects.
        event_type: One of EventType.
        metadata: JSON-serializable details (tag id, entity name, ...).

    Returns:
        The appended event with the states before and after the fold.

    Raises:
        TransientError: The recompute could not complete within the retry
            bound; the caller must roll back the enclosing decision.
    """
    metadata = dict(metadata or {})
    attempts = max(1, settings.reputation_retry_attempts)
    last_exc: Optional[Exception] = None

    for attempt in range(attempts):
        try:
            async with db.begin_nested():
                ledger_update = await _fold_and_append(db, user_id, event_type, metadata)
        except (StaleDataError, OperationalError, IntegrityError) as exc:
            last_exc = exc
            if attempt + 1 >= attempts:
                break
            delay = settings.reputation_retry_base_delay * (2 ** attempt)
            reputation_recompute_retries.inc()
            log.warning(
                "reputation_recompute_retry",
                user_id=str(user_id),
                event_type=event_type.value,
                attempt=attempt + 1,
                delay_s=delay,
                error=type(exc).__name__,
            )
            await asyncio.sleep(delay)
            continue

        if ledger_update.before.trust_level != ledger_update.after.trust_level:
            trust_level_transitions.labels(
                from_level=ledger_update.before.trust_level.value,
                to_level=ledger_update.after.trust_level.value,
            ).inc()
            log.info(
                "trust_level_changed",
                user_id=str(user_id),
                trust_before=ledger_update.before.trust_level.value,
                trust_after=ledger_update.after.trust_level.value,
                score_after=ledger_update.after.reputation_score,
                auto_approve=ledger_update.after.auto_approve,
            )
        return ledger_update

    reputation_recompute_failures.inc()
    log.error(
        "reputation_recompute_failed",
        user_id=str(user_id),
        event_type=event_type.value,
        attempts=attempts,
    )
    raise TransientError(
        "Reputation update could not be completed; the operation was rolled back"
    ) from last_exc


async def set_trust_override(
    db: AsyncSession, user_id: uuid.UUID, level: Optional[TrustLevel], admin_id: uuid.UUID
) -> LedgerUpdate:
    """Pin (or unpin, with None) a user's trust level. Recorded as an event."""
    if level is None:
        return await append_event(
            db, user_id, EventType.trust_override_cleared, {"set_by": str(admin_id)}
        )
    return await append_event(
        db,
        user_id,
        EventType.trust_override_set,
        {"trust_level": level.value, "set_by": str(admin_id)},
    )


async def reconcile_user(
    db: AsyncSession, user_id: uuid.UUID, *, repair: bool = False
) -> tuple[ReputationState, ReputationState]:
    """Compare a user's live record with its replay; optionally overwrite the projection.

    Returns:
        (live, replayed). They are equal unless the projection has drifted.
    """
    record = await load_record(db, user_id, lock=repair)
    live = ReputationState.from_record(record) if record is not None else ReputationState()
    replayed = await recompute(db, user_id)
    if repair and record is not None and live != replayed:
        replayed.write_to(record)
        await db.flush()
    return live, replayed
