"""
Database Connection and Session Management

One engine per process; every request (and every pipeline run) works in its
own AsyncSession. SQLite's single-writer locking is the only serialization
point between concurrent webhooks.
"""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.core.config import settings

# Seconds a writer waits on a locked SQLite file before giving up
SQLITE_BUSY_TIMEOUT_SECONDS = 15


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite files get a busy timeout."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"timeout": SQLITE_BUSY_TIMEOUT_SECONDS, "check_same_thread": False}

    return create_async_engine(url, echo=echo, connect_args=connect_args)


engine = build_engine(settings.database_url, echo=settings.DEBUG)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create tables that do not exist yet"""
    # Registers the models on Base.metadata
    import app.db.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
