"""Initial schema: users, entities, tags, votes and the reputation ledger

Revision ID: 3f1c2a9d7e10
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates all 6 tables: users, entities, tags, votes, reputation_records,
reputation_events.

NOTE: Written manually (not via autogenerate) because the partial unique
index on tags (one active tag per content/name/submitter) needs an explicit
WHERE clause that autogenerate does not round-trip reliably.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1c2a9d7e10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users table ---
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("api_key_hash", sa.String(255), nullable=True, unique=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )

    # --- entities table ---
    op.create_table(
        "entities",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("canonical_name", sa.String(200), nullable=False),
        sa.Column("normalized_name", sa.String(200), nullable=False),
        sa.Column("approved_tag_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index(
        "ix_entities_normalized_name", "entities", ["normalized_name"], unique=True
    )

    # --- tags table ---
    op.create_table(
        "tags",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("content_id", sa.String(255), nullable=False),
        sa.Column("entity_name", sa.String(200), nullable=False),
        sa.Column("normalized_name", sa.String(200), nullable=False),
        sa.Column("attrs", JSONB, nullable=True),
        sa.Column(
            "entity_id",
            UUID(as_uuid=True),
            sa.ForeignKey("entities.id", name="fk_tags_entity_id_entities"),
            nullable=True,
        ),
        sa.Column(
            "submitter_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", name="fk_tags_submitter_id_users"),
            nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("decided_by", UUID(as_uuid=True), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decision_source", sa.String(10), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("upvote_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("downvote_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="ck_tags_status"
        ),
    )

    # Rejected tags fall outside the index so a user may re-submit
    op.create_index(
        "uq_tags_active_content_name_submitter",
        "tags",
        ["content_id", "normalized_name", "submitter_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'approved')"),
    )
    op.create_index("ix_tags_queue_order", "tags", ["status", "confidence", "created_at"])
    op.create_index("ix_tags_submitter_id", "tags", ["submitter_id"])
    op.create_index("ix_tags_content_id", "tags", ["content_id"])
    op.create_index("ix_tags_normalized_name", "tags", ["normalized_name"])

    # --- votes table ---
    op.create_table(
        "votes",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tag_id",
            UUID(as_uuid=True),
            sa.ForeignKey("tags.id", name="fk_votes_tag_id_tags", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "voter_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", name="fk_votes_voter_id_users"),
            nullable=False,
        ),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("tag_id", "voter_id", name="uq_votes_tag_id_voter_id"),
    )
    op.create_index("ix_votes_tag_id", "votes", ["tag_id"])

    # --- reputation_records table (projection) ---
    op.create_table(
        "reputation_records",
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", name="fk_reputation_records_user_id_users"),
            primary_key=True,
        ),
        sa.Column("approved_tags", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rejected_tags", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pending_tags", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("upvotes_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("downvotes_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reputation_score", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("trust_level", sa.String(20), nullable=False, server_default="new"),
        sa.Column("auto_approve", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("trust_override", sa.String(20), nullable=True),
        sa.Column("event_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )

    # --- reputation_events table (append-only log) ---
    op.create_table(
        "reputation_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey(
                "reputation_records.user_id",
                name="fk_reputation_events_user_id_reputation_records",
            ),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("score_before", sa.Float(), nullable=False),
        sa.Column("score_after", sa.Float(), nullable=False),
        sa.Column("trust_before", sa.String(20), nullable=False),
        sa.Column("trust_after", sa.String(20), nullable=False),
        sa.Column("metadata_json", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint(
            "user_id", "sequence", name="uq_reputation_events_user_id_sequence"
        ),
    )
    op.create_index("ix_reputation_events_user_id", "reputation_events", ["user_id"])


def downgrade() -> None:
    # Drop tables in reverse dependency order
    op.drop_index("ix_reputation_events_user_id", table_name="reputation_events")
    op.drop_table("reputation_events")
    op.drop_table("reputation_records")
    op.drop_index("ix_votes_tag_id", table_name="votes")
    op.drop_table("votes")
    op.drop_index("ix_tags_normalized_name", table_name="tags")
    op.drop_index("ix_tags_content_id", table_name="tags")
    op.drop_index("ix_tags_submitter_id", table_name="tags")
    op.drop_index("ix_tags_queue_order", table_name="tags")
    op.drop_index("uq_tags_active_content_name_submitter", table_name="tags")
    op.drop_table("tags")
    op.drop_index("ix_entities_normalized_name", table_name="entities")
    op.drop_table("entities")
    op.drop_table("users")
