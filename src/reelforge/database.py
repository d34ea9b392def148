"""Database models and connection management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import settings

Base = declarative_base()


class ProjectRecord(Base):
    __tablename__ = "projects"

    # ========== 核心标识列 ==========
    id = Column(Integer, primary_key=True)
    external_id = Column(String(64), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False)
    creation_mode = Column(String(20), nullable=False, default="ai-original")
    current_step = Column(Integer, nullable=False, default=1)

    # ========== 文案与生成设置 ==========
    script_content = Column(Text, nullable=True)
    generation_mode = Column(String(40), nullable=True)
    aspect_ratio = Column(String(10), nullable=False, default="16:9")

    # ========== JSON 列 ==========
    style_settings_json = Column(JSON)
    segments_json = Column(JSON)
    visual_bible_json = Column(JSON)

    # ========== 时间戳 ==========
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False, index=True)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# ============================================================================
# Database Connection Management
# ============================================================================


class DatabaseManager:
    """Manages async database connections."""

    def __init__(self):
        self.engine = None
        self.session_factory = None

    def initialize(self, database_url: str):
        """Initialize the database engine and session factory."""
        engine_kwargs: dict[str, object] = {
            "echo": settings.environment == "development" and settings.log_level == "DEBUG",
            "pool_pre_ping": True,
        }
        # SQLite 不支持连接池参数
        if not database_url.startswith("sqlite"):
            engine_kwargs.update(pool_size=20, max_overflow=10)
        self.engine = create_async_engine(database_url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_tables(self):
        """Create all tables in the database."""
        if not self.engine:
            raise RuntimeError("Database not initialized")

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for database operations."""
        if not self.session_factory:
            raise RuntimeError("Database not initialized")

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self):
        """Close the database engine."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None


# Global instance
db_manager = DatabaseManager()


async def init_database(database_url: str | None = None):
    """Initialize database connection from settings."""
    url = database_url or settings.database_url
    if url:
        db_manager.initialize(url)
        await db_manager.create_tables()
