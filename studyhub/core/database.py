from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from studyhub.core.config import settings


def get_async_database_url(url: str) -> str:
    """Point plain Postgres URLs at the asyncpg driver.

    ``STUDYHUB_DATABASE_URL`` may be a bare ``postgres://`` or ``postgresql://``
    URL; other schemes (``sqlite+aiosqlite`` in tests) are returned unchanged.
    """
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


# One engine per process; the progression store opens a short session per call
database_url = get_async_database_url(settings.database_url)

engine = create_async_engine(
    database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db() -> None:
    """Create all tables. Call once at startup."""
    from studyhub.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
