from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tagtrust.config import settings

engine = create_async_engine(settings.database_url, echo=settings.debug, pool_pre_ping=True)

async_session_factory = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_db():
    """FastAPI dependency: yields AsyncSession per request.

    Routers commit explicitly; anything left uncommitted when the request
    ends (a domain error, a failed reputation recompute) is rolled back
    when the session closes.
    """
    async with async_session_factory() as session:
        yield session
