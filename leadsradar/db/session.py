"""Async database engine and session factory for LeadsRadar.

Usage:
    from leadsradar.db.session import get_session

    async with get_session() as session:
        result = await session.execute(select(Lead))

IMPORTANT: Each request/operation must get its own session from the factory.
AsyncSession is NOT safe to share across concurrent coroutines or requests.
The get_session() context manager ensures each caller gets a fresh session
that is properly closed and returned to the pool on exit.
"""

from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from leadsradar.config import settings

# Pool sizing only applies to server databases; SQLite (tests) uses its own pool.
_engine_kwargs = {} if settings.database_url.startswith("sqlite") else {
    "pool_size": 10,
    "max_overflow": 20,
    "pool_pre_ping": True,
}

# Module-level async engine, shared across the process lifetime
engine = create_async_engine(settings.database_url, echo=False, **_engine_kwargs)

# Session factory: call AsyncSessionFactory() to get a new session
# expire_on_commit=False keeps ORM objects accessible after commit
AsyncSessionFactory = async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def get_session() -> AsyncSession:
    """Async context manager that yields a database session.

    Yields a fresh AsyncSession for each call.  The session is closed and
    its connection returned to the pool when the context exits, whether
    normally or via exception.

    Example:
        async with get_session() as session:
            await session.execute(...)
            await session.commit()
    """
    async with AsyncSessionFactory() as session:
        yield session


def dialect_insert(session: AsyncSession):
    """Return the dialect-specific ``insert`` construct for the session's engine.

    Both the PostgreSQL and SQLite constructs support
    ``on_conflict_do_nothing()``, which the lead and rate-limit stores rely on
    for race-free row creation.
    """
    if session.bind.dialect.name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert  # noqa: PLC0415
    else:
        from sqlalchemy.dialects.postgresql import insert  # noqa: PLC0415
    return insert
