"""Shared fixtures for the TagTrust test suite.

Tests run against an in-memory SQLite database through aiosqlite, one fresh
database per test. pysqlite's own transaction handling is switched off so
that SAVEPOINTs (session.begin_nested) behave as they do on PostgreSQL.
"""

from collections.abc import AsyncGenerator
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from tagtrust.database import get_db
from tagtrust.main import app
from tagtrust.middleware.rate_limiter import read_rate_limit, write_rate_limit
from tagtrust.models import Base, Tag, User
from tagtrust.routers.auth import new_api_key
from tagtrust.services import moderation, tags


def _sqlite_engine(url: str, **kwargs) -> AsyncEngine:
    test_engine = create_async_engine(
        url, connect_args={"check_same_thread": False}, **kwargs
    )

    @event.listens_for(test_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Disable the driver's implicit BEGIN; emitted explicitly below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(test_engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return test_engine


@pytest_asyncio.fixture
async def engine():
    test_engine = _sqlite_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """A file-backed database, so that separate sessions get separate connections."""
    test_engine = _sqlite_engine(f"sqlite+aiosqlite:///{tmp_path / 'tagtrust.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db_session):
    """Factory: await make_user(is_admin=...) -> (User, raw API key)."""

    async def _make(*, is_admin: bool = False, email: Optional[str] = None) -> tuple[User, str]:
        raw_key, key_hash = new_api_key()
        user = User(api_key_hash=key_hash, email=email, is_admin=is_admin)
        db_session.add(user)
        await db_session.flush()
        return user, raw_key

    return _make


@pytest_asyncio.fixture
async def submitter(make_user) -> User:
    user, _ = await make_user()
    return user


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    user, _ = await make_user(is_admin=True)
    return user


@pytest.fixture
def approved_history(db_session, admin):
    """Factory: give a user `count` admin-approved tags on distinct content items."""

    async def _approve(user: User, count: int, *, prefix: str = "history") -> list[Tag]:
        approved = []
        for i in range(count):
            tag = await tags.submit_tag(
                db_session,
                content_id=f"{prefix}-{i}",
                entity_name=f"Person {prefix} {i}",
                submitter_id=user.id,
            )
            if tag.status == "pending":
                tag = await moderation.approve_tag(db_session, tag.id, admin.id)
            approved.append(tag)
        return approved

    return _approve


async def _no_rate_limit() -> None:
    return None


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app, sharing the test session, no Redis."""

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[read_rate_limit] = _no_rate_limit
    app.dependency_overrides[write_rate_limit] = _no_rate_limit

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()
