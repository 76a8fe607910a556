import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

if TYPE_CHECKING:
    from .tag import Tag


class VoteDirection(str, enum.Enum):
    up = "up"
    down = "down"


VOTE_UNIQUE_CONSTRAINT = "uq_votes_tag_id_voter_id"


class Vote(Base):
    """One row per (tag, voter); re-voting overwrites direction."""

    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("tag_id", "voter_id", name=VOTE_UNIQUE_CONSTRAINT),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tag_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tags.id", name="fk_votes_tag_id_tags", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    voter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", name="fk_votes_voter_id_users"), nullable=False
    )
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
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

    tag: Mapped["Tag"] = relationship("Tag", back_populates="votes", lazy="raise")
