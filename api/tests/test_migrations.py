"""The alembic environment renders the full schema.

Runs `upgrade head` in offline (--sql) mode against the configured
PostgreSQL URL, so no database server is needed.
"""

import io
from pathlib import Path

from alembic import command
from alembic.config import Config

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


def _render(revision: str = "head") -> str:
    buffer = io.StringIO()
    config = Config(output_buffer=buffer)
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    command.upgrade(config, revision, sql=True)
    return buffer.getvalue()


class TestOfflineUpgrade:
    def test_creates_every_table(self):
        sql = _render()
        for table in (
            "users",
            "entities",
            "tags",
            "votes",
            "reputation_records",
            "reputation_events",
        ):
            assert f"CREATE TABLE {table} " in sql

    def test_active_tag_index_is_partial(self):
        sql = _render()
        assert "CREATE UNIQUE INDEX uq_tags_active_content_name_submitter" in sql
        assert "WHERE status IN ('pending', 'approved')" in sql

    def test_stamps_the_revision(self):
        sql = _render()
        assert "alembic_version" in sql
        assert "3f1c2a9d7e10" in sql
