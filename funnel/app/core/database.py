"""
Lead Funnel Database
Async SQLAlchemy engine and sessions. PostgreSQL (asyncpg) in deployments,
SQLite (aiosqlite) for local runs and tests.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
import structlog

from .config import settings

logger = structlog.get_logger()


class Base(DeclarativeBase):
    pass


def engine_options(database_url: str) -> Dict[str, Any]:
    """Pool settings for the URL's backend"""
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 300}


def build_engine(database_url: str, **overrides) -> AsyncEngine:
    options = engine_options(database_url)
    options.update(overrides)
    return create_async_engine(database_url, echo=settings.debug, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    # Services read attributes after commit, so instances must not expire
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url)
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; uncommitted work is rolled back on error"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error("Database session error", error=str(e))
            await session.rollback()
            raise


async def ping(session: AsyncSession) -> bool:
    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Database ping failed", error=str(e))
        return False
    return True


async def init_db():
    """Create the lead tables if they do not exist"""
    from ..models import leads  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready", backend=engine.dialect.name)


async def close_db():
    await engine.dispose()
    logger.info("Database engine disposed")
