from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from codelens.core.config_provider import config_provider

# Base class for all ORM models
Base = declarative_base()

_async_engine = None
_async_session_factory = None


def get_async_database_url() -> str:
    return config_provider.get_postgres_server().replace(
        "postgresql://", "postgresql+asyncpg://"
    )


def get_async_engine():
    """Create the async engine on first use so importing models needs no database."""
    global _async_engine
    if _async_engine is None:
        _async_engine = create_async_engine(
            get_async_database_url(),
            pool_size=10,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=1800,
            pool_pre_ping=True,
            echo=False,
        )
    return _async_engine


def get_async_session_factory():
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _async_session_factory


# Dependency to be used in asynchronous routes
async def get_async_db():
    async with get_async_session_factory()() as db:
        yield db


async def dispose_engine():
    global _async_engine, _async_session_factory
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_session_factory = None
