from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def create_engine_from_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine.

    Postgres URLs are upgraded to the asyncpg driver; sqlite URLs
    (used by the test-suite) should already name aiosqlite.
    """
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif database_url.startswith("postgresql+psycopg2://"):
        database_url = database_url.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)

    options = {"echo": echo}
    if not database_url.startswith("sqlite"):
        options["pool_pre_ping"] = True  # Verify connections before use

    return create_async_engine(database_url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """
    Session factory for operation-scoped sessions.

    expire_on_commit is off so returned rows stay readable after the
    session closes.
    """
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create database tables."""
    # Register all tables on Base.metadata
    import inbox_navigator.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
