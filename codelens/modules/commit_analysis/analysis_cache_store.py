from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert

from codelens.core.base_store import DATABASE_ERRORS, BaseStore, StoreError
from codelens.modules.commit_analysis.analysis_cache_model import AnalysisCacheEntry
from codelens.modules.utils.logger import setup_logger

logger = setup_logger(__name__)


class AnalysisCacheStore(BaseStore):
    """Handles all database operations for the AnalysisCacheEntry model."""

    async def get(self, diff_hash: str) -> Optional[AnalysisCacheEntry]:
        try:
            stmt = select(AnalysisCacheEntry).where(
                AnalysisCacheEntry.diff_hash == diff_hash
            )
            result = await self.async_db.execute(stmt)
            return result.scalar_one_or_none()
        except DATABASE_ERRORS as e:
            await self.rollback()
            logger.error(f"Database error reading cache entry {diff_hash}: {e}")
            raise StoreError(f"Failed to read cache entry {diff_hash}") from e

    async def put(
        self,
        diff_hash: str,
        diff: str,
        analysis: dict,
        created_at: Optional[datetime] = None,
    ) -> bool:
        """
        Insert a cache entry. An existing entry for the hash is left as is.

        Returns True when a row was written.
        """
        stmt = (
            insert(AnalysisCacheEntry)
            .values(
                diff_hash=diff_hash,
                diff=diff,
                analysis=analysis,
                created_at=created_at or datetime.now(timezone.utc),
            )
            .on_conflict_do_nothing(index_elements=["diff_hash"])
        )
        try:
            result = await self.async_db.execute(stmt)
            await self.async_db.commit()
        except DATABASE_ERRORS as e:
            await self.rollback()
            logger.error(f"Database error writing cache entry {diff_hash}: {e}")
            raise StoreError(f"Failed to write cache entry {diff_hash}") from e
        return bool(result.rowcount)

    async def list_recent(self, limit: int = 100) -> List[AnalysisCacheEntry]:
        try:
            stmt = (
                select(AnalysisCacheEntry)
                .order_by(AnalysisCacheEntry.created_at.desc())
                .limit(limit)
            )
            result = await self.async_db.execute(stmt)
            return list(result.scalars().all())
        except DATABASE_ERRORS as e:
            await self.rollback()
            logger.error(f"Database error listing recent cache entries: {e}")
            raise StoreError("Failed to list recent cache entries") from e
