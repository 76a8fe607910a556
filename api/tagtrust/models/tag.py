import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

if TYPE_CHECKING:
    from .user import User
    from .vote import Vote


class TagStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class DecisionSource(str, enum.Enum):
    admin = "admin"
    auto = "auto"


# At most one pending or approved tag per (content, normalized name, submitter).
# Rejected tags fall outside the partial index so a user may re-submit.
ACTIVE_TAG_UNIQUE_INDEX = "uq_tags_active_content_name_submitter"
_ACTIVE_PREDICATE = text("status IN ('pending', 'approved')")


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (
        Index(
            ACTIVE_TAG_UNIQUE_INDEX,
            "content_id",
            "normalized_name",
            "submitter_id",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
        Index("ix_tags_queue_order", "status", "confidence", "created_at"),
        Index("ix_tags_submitter_id", "submitter_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Content items live in the media layer; only their identifier is stored
    content_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    entity_name: Mapped[str] = mapped_column(String(200), nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    attrs: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("entities.id", name="fk_tags_entity_id_entities"), nullable=True
    )

    submitter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", name="fk_tags_submitter_id_users"), nullable=False
    )

    # Moderation state machine: pending -> approved | rejected (terminal)
    status: Mapped[str] = mapped_column(
        String(20), default=TagStatus.pending.value, nullable=False
    )
    decided_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    decision_source: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Denormalized from the votes table; always re-derivable
    upvote_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    downvote_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    submitter: Mapped["User"] = relationship("User", back_populates="tags", lazy="raise")
    votes: Mapped[list["Vote"]] = relationship("Vote", back_populates="tag", lazy="raise")
