"""Database setup with SQLAlchemy async."""

from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from recsync.config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

REQUIRED_TABLES = (
    "agents",
    "recordings",
    "recording_participants",
    "recording_tags",
    "sync_states",
    "sync_history",
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


async def check_db_ready() -> None:
    """
    Verify database connectivity and expected schema.

    Checks that the sync engine's tables exist.
    """
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))

        select_list = ", ".join(
            f"to_regclass('public.{name}') AS {name}" for name in REQUIRED_TABLES
        )
        tables = await conn.execute(text(f"SELECT {select_list}"))
        row = tables.first()
        if row is None or any(value is None for value in row):
            missing = [
                name
                for name in REQUIRED_TABLES
                if row is None or getattr(row, name) is None
            ]
            raise RuntimeError(
                f"Database schema is missing tables: {', '.join(missing)} "
                "(run database init or check migrations)."
            )
