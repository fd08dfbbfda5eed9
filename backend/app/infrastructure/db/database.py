"""
Database Configuration for Finance Tracker

Async SQLAlchemy engine and session management for the Supabase Postgres
database. One DatabaseManager is built at process start and handed to the
repositories that need it.
"""

import re
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from urllib.parse import quote_plus

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy import text

from app.config.settings import Settings
from app.infrastructure.exceptions import ConfigurationError


def resolve_database_url(settings: Settings) -> str:
    """
    Get PostgreSQL connection URL for SQLModel.

    Uses DATABASE_URL if provided, otherwise derives it from
    SUPABASE_URL + SUPABASE_PASSWORD.
    """
    if settings.database_url:
        database_url = settings.database_url
        if database_url.startswith("postgresql://"):
            database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql+asyncpg://", 1)
        return database_url

    if not settings.supabase_url or not settings.supabase_password:
        raise ConfigurationError(
            "Either DATABASE_URL or (SUPABASE_URL + SUPABASE_PASSWORD) is required",
            missing_keys=["DATABASE_URL", "SUPABASE_PASSWORD"],
        )

    match = re.match(r'https?://([^.]+)\.supabase\.co', settings.supabase_url)
    if not match:
        raise ConfigurationError(f"Invalid SUPABASE_URL format: {settings.supabase_url}")

    project_ref = match.group(1)
    password = quote_plus(settings.supabase_password)

    # Direct database connection (not pooler)
    return (
        f"postgresql+asyncpg://postgres:{password}"
        f"@db.{project_ref}.supabase.co:5432/postgres"
    )


class DatabaseManager:
    """
    Manages async database connections and sessions.

    The engine is created lazily on first use and disposed on close().
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        """Get or create async engine with connection pooling."""
        if self._engine is None:
            self._initialize_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create session factory."""
        if self._session_factory is None:
            self._initialize_engine()
        return self._session_factory

    def _initialize_engine(self) -> None:
        self._engine = create_async_engine(
            resolve_database_url(self._settings),
            echo=self._settings.database_echo,
            pool_size=self._settings.database_pool_size,
            max_overflow=self._settings.database_max_overflow,
            pool_timeout=self._settings.database_pool_timeout,
            pool_pre_ping=True,  # Verify connections before use
        )

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Transactional session scope.

        Usage:
            async with db.session() as session:
                await session.execute(stmt)

        Commits on success, rolls back and re-raises on error.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> None:
        """Verify the connection works (called on app startup)."""
        async with self.session() as session:
            await session.execute(text("SELECT 1"))

    async def close(self) -> None:
        """Close engine and dispose of connection pool."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
