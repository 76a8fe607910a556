"""Create (or promote) an admin user and print a fresh API key.

Admin keys are never issued over HTTP; moderators are provisioned here.

Key behaviors:
- The email is the idempotency key: an existing user is promoted to admin
  and gets a newly generated key (the old one stops working)
- Only the SHA-256 hash of the key is stored; the raw key is printed once

Usage:
    # From project root:
    cd api
    DATABASE_URL="postgresql+asyncpg://..." uv run python -m scripts.create_admin --email mod@example.com

    # With DATABASE_URL from .env (pydantic-settings loads it automatically):
    uv run python -m scripts.create_admin --email mod@example.com --display-name "Moderator"
"""
import argparse
import asyncio
import sys
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Support running from both project root and api/ directory
_api_root = Path(__file__).parent.parent  # api/
if str(_api_root) not in sys.path:
    sys.path.insert(0, str(_api_root))

from tagtrust.config import settings
from tagtrust.models.user import User
from tagtrust.routers.auth import new_api_key


async def upsert_admin(session: AsyncSession, email: str, display_name: str | None) -> tuple[User, str]:
    """Create the admin user, or promote the existing one, and rotate its key.

    Returns the User and the raw API key. The caller commits.
    """
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    raw_key, key_hash = new_api_key()
    if user is None:
        user = User(email=email, display_name=display_name, is_admin=True, api_key_hash=key_hash)
        session.add(user)
    else:
        user.is_admin = True
        user.api_key_hash = key_hash
        if display_name:
            user.display_name = display_name

    await session.flush()
    return user, raw_key


async def create_admin(email: str, display_name: str | None) -> None:
    engine = create_async_engine(settings.database_url, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    try:
        async with session_factory() as session:
            user, raw_key = await upsert_admin(session, email, display_name)
            await session.commit()
    finally:
        await engine.dispose()

    print(f"Admin user: {user.id} ({email})")
    print(f"API key:    {raw_key}")
    print("Store this key securely -- it cannot be retrieved again")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a TagTrust admin user and API key")
    parser.add_argument("--email", required=True, help="Admin email (idempotency key)")
    parser.add_argument("--display-name", default=None, help="Optional display name")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    asyncio.run(create_admin(args.email, args.display_name))
