from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from conduit.config import settings
from conduit.middleware import install_query_counter

# One engine per process; the test suite builds its own SQLite engine and
# swaps it in by overriding get_db.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Feeds the X-Query-Count diagnostic header.
install_query_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def init_models() -> None:
    """Create any missing tables.  Called at startup when CREATE_TABLES is set."""
    import conduit.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    """
    Yield one session per request.

    The whole request runs inside a single transaction: services flush but
    never commit, so multi-statement writes (tag replacement, article
    deletion with its dependents) become visible all at once or not at all.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
