# marketsync/database.py

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base

from marketsync.core.config import get_settings

Base = declarative_base()


def normalize_database_url(database_url: str) -> str:
    """Convert postgresql:// to postgresql+asyncpg:// for async support"""
    if not database_url:
        raise ValueError("DATABASE_URL is not set in environment variables")
    if database_url.startswith('postgresql://'):
        database_url = database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return database_url


def create_engine_from_settings(settings=None):
    settings = settings or get_settings()
    database_url = normalize_database_url(settings.DATABASE_URL)

    engine_kwargs = {"echo": settings.DATABASE_ECHO, "future": True}
    if database_url.startswith("postgresql"):
        engine_kwargs.update(
            pool_size=10,
            max_overflow=20,
            pool_timeout=30,
            pool_recycle=1800,
        )
    return create_async_engine(database_url, **engine_kwargs)


def create_session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


engine = create_engine_from_settings()
async_session = create_session_factory(engine)

