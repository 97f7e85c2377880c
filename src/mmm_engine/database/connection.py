"""
Database connection management for SQLite and PostgreSQL.
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
import structlog

from mmm_engine.config.settings import settings

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def to_async_url(database_url: str) -> str:
    """Convert a database URL to its async driver form."""
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


class DatabaseManager:
    """Manages database connections and sessions."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self.engine: Optional[AsyncEngine] = None
        self.async_session_maker: Optional[async_sessionmaker] = None

    async def initialize(self):
        """Initialize the async engine and session factory."""
        database_url = to_async_url(self.database_url or settings.database.url)

        engine_kwargs = {"echo": settings.database.echo, "pool_pre_ping": True}
        if "postgresql" in database_url:
            engine_kwargs.update(
                pool_size=settings.database.pool_size,
                max_overflow=settings.database.max_overflow,
                pool_recycle=3600,
                connect_args={
                    "server_settings": {
                        "statement_timeout": "30s",
                        "lock_timeout": "10s"
                    }
                }
            )

        self.engine = create_async_engine(database_url, **engine_kwargs)
        self.async_session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        logger.info("Database initialized", url=self.engine.url.render_as_string(hide_password=True))

    async def create_tables(self):
        """Create all tables known to the metadata."""
        if not self.engine:
            await self.initialize()

        # Register models on the metadata before create_all
        from mmm_engine.database import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    async def get_session_maker(self) -> async_sessionmaker:
        if not self.async_session_maker:
            await self.initialize()
        return self.async_session_maker

    async def close(self):
        """Close all database connections."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.async_session_maker = None

        logger.info("Database connections closed")
