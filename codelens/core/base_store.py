import asyncio

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from codelens.modules.utils.logger import setup_logger

logger = setup_logger(__name__)

# asyncpg connect failures reach us unwrapped by SQLAlchemy
DATABASE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


class StoreError(Exception):
    """Raised by stores when a database operation fails."""


class BaseStore:
    """Base class for data stores; holds the async session for one request."""

    def __init__(self, async_db: AsyncSession):
        self.async_db = async_db

    async def rollback(self):
        """Roll back the shared session so later statements in the request still run."""
        try:
            await self.async_db.rollback()
        except DATABASE_ERRORS as e:
            logger.warning(f"Rollback failed: {e}")
