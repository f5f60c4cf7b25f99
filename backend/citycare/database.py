"""Database setup with SQLAlchemy async.

Users and issues are stored as one row per document; embedded lists
(media, update log, notifications, address) live in JSON columns so a
document is always read and written as a whole.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from citycare.config import get_settings

settings = get_settings()


def engine_options(database_url: str, echo: bool = False) -> dict[str, Any]:
    """Build engine keyword arguments suited to the database backend."""
    options: dict[str, Any] = {"echo": echo}
    if database_url.startswith("sqlite"):
        if ":memory:" in database_url:
            # One shared connection, otherwise every checkout sees an empty database
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        return options

    options.update(pool_pre_ping=True, pool_size=5, max_overflow=10)
    return options


engine = create_async_engine(
    settings.database_url,
    **engine_options(settings.database_url, echo=settings.debug),
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Create the users and issues tables if they do not exist yet."""
    # Registers the mapped classes on Base.metadata
    import citycare.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_db_ready() -> None:
    """
    Verify database connectivity and expected schema.

    Raises when the database cannot be reached or a table is missing.
    """
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))

        tables = await conn.run_sync(
            lambda sync_conn: set(inspect(sync_conn).get_table_names())
        )
        missing = [name for name in ("users", "issues") if name not in tables]

        if missing:
            raise RuntimeError(
                f"Database schema is missing tables: {', '.join(missing)} "
                "(run database init)."
            )


async def close_db() -> None:
    """Dispose of pooled connections."""
    await engine.dispose()
