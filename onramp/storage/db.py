# ==== DATABASE CONNECTION AND SESSION MANAGEMENT ==== #

"""
Database connection and session management for the onramp order engine.

This module provides async SQLAlchemy connectivity for PostgreSQL (asyncpg)
in deployed environments and SQLite (aiosqlite) for local runs and tests,
with session lifecycle helpers for request handlers and background tasks.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
    AsyncEngine
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool, StaticPool

from onramp.settings import settings
from onramp.observability.metrics import db_connections_active


# ==== SQLALCHEMY CONFIGURATION ==== #

# SQLAlchemy base for model definitions
Base = declarative_base()

# Global engine and session factory instances
engine: AsyncEngine | None = None
SessionLocal: async_sessionmaker[AsyncSession] | None = None


def normalize_database_url(db_url: str) -> str:
    """Force async drivers onto plain database URLs."""
    if db_url.startswith("sqlite://"):
        return db_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    if not db_url.startswith("postgresql+asyncpg://"):
        db_url = db_url.replace("postgresql+psycopg://", "postgresql+asyncpg://")
        db_url = db_url.replace("postgresql://", "postgresql+asyncpg://")

    # asyncpg expects ssl= rather than libpq's sslmode=
    if "sslmode=require" in db_url:
        db_url = db_url.replace("sslmode=require", "ssl=require")
    return db_url


# ==== DATABASE INITIALIZATION ==== #

def init_database(db_url: str | None = None) -> AsyncEngine:
    """
    Initialize database engine and session factory.

    SQLite URLs get a static pool so an in-memory database is shared across
    sessions; pooled PostgreSQL URLs (PgBouncer) get NullPool to avoid
    double pooling.

    Args:
        db_url: Override for settings.DATABASE_URL

    Returns:
        AsyncEngine: The initialized engine
    """
    global engine, SessionLocal

    if engine is not None:
        return engine

    url = normalize_database_url(db_url or settings.DATABASE_URL)

    if url.startswith("sqlite+aiosqlite://"):
        engine = create_async_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        is_pooler = "pooler" in url
        engine = create_async_engine(
            url,
            echo=False,
            poolclass=NullPool if is_pooler else None,
            connect_args={
                # Prepared statements break behind transaction poolers
                "statement_cache_size": 0,
                "server_settings": {
                    "application_name": settings.SERVICE_NAME,
                    "timezone": "UTC"
                }
            },
        )

    SessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine


async def create_all() -> None:
    """Create all tables directly, bypassing migrations (local runs and tests)."""
    from onramp.storage import models  # noqa: F401  register mappers

    active = init_database()
    async with active.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session with automatic commit or rollback.

    Used by background tasks that outlive the request session.

    Yields:
        AsyncSession: Database session
    """
    if SessionLocal is None:
        init_database()

    async with SessionLocal() as session:
        try:
            db_connections_active.inc()
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            db_connections_active.dec()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    Yields:
        AsyncSession: Database session for request handling
    """
    async with get_session() as session:
        yield session


async def close_database() -> None:
    """Close database connections on shutdown."""
    global engine, SessionLocal
    if engine is not None:
        await engine.dispose()
        engine = None
        SessionLocal = None
