"""ReputationRecord and ReputationEvent ORM models.

ReputationRecord is a materialized projection over the user's
ReputationEvent rows: every counter change is appended as an event first and
folded into the record in the same transaction. The record can always be
rebuilt by replaying events in sequence order (services.reputation.replay).

Concurrency guards, both enforced by the database:
- version_id is a SQLAlchemy version counter; a concurrent writer that
  updated the record first makes our UPDATE match zero rows (StaleDataError).
- (user_id, sequence) is unique on events; two writers that folded from the
  same record state collide on the same sequence number.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow

EVENT_SEQUENCE_CONSTRAINT = "uq_reputation_events_user_id_sequence"


class ReputationRecord(Base):
    __tablename__ = "reputation_records"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", name="fk_reputation_records_user_id_users"),
        primary_key=True,
    )
    approved_tags: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rejected_tags: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pending_tags: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    upvotes_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    downvotes_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Derived fields: never written except by the ledger fold
    reputation_score: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)
    trust_level: Mapped[str] = mapped_column(String(20), default="new", nullable=False)
    auto_approve: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    trust_override: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    event_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version_id}


class ReputationEvent(Base):
    """Append-only. Rows are never updated or deleted."""

    __tablename__ = "reputation_events"
    __table_args__ = (
        UniqueConstraint("user_id", "sequence", name=EVENT_SEQUENCE_CONSTRAINT),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey(
            "reputation_records.user_id",
            name="fk_reputation_events_user_id_reputation_records",
        ),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    score_before: Mapped[float] = mapped_column(Float, nullable=False)
    score_after: Mapped[float] = mapped_column(Float, nullable=False)
    trust_before: Mapped[str] = mapped_column(String(20), nullable=False)
    trust_after: Mapped[str] = mapped_column(String(20), nullable=False)
    metadata_json: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
