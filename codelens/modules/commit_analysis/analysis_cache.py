from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Protocol

from codelens.core.base_store import StoreError
from codelens.core.config_provider import config_provider
from codelens.modules.commit_analysis.diff_signature import (
    DiffSignatureIndexer,
    SimilarityWeights,
    calculate_similarity,
)
from codelens.modules.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class CacheEntry:
    diff_hash: str
    diff: str
    analysis: dict
    created_at: Optional[datetime] = None
    similarity: Optional[float] = None

    @classmethod
    def from_row(cls, row: Any, similarity: Optional[float] = None) -> "CacheEntry":
        return cls(
            diff_hash=row.diff_hash,
            diff=row.diff,
            analysis=row.analysis,
            created_at=row.created_at,
            similarity=similarity,
        )


class CacheBackend(Protocol):
    async def get(self, diff_hash: str) -> Any: ...

    async def put(self, diff_hash: str, diff: str, analysis: dict) -> bool: ...

    async def list_recent(self, limit: int = 100) -> List[Any]: ...


class AnalysisCache:
    """
    Two-tier analysis cache: exact lookup by diff hash, then fuzzy lookup
    over the most recent entries by diff signature.

    Store failures are logged and reported as a miss or a skipped write.
    """

    def __init__(
        self,
        store: CacheBackend,
        indexer: Optional[DiffSignatureIndexer] = None,
        weights: Optional[SimilarityWeights] = None,
        threshold: Optional[float] = None,
        candidate_limit: Optional[int] = None,
    ):
        self.store = store
        self.indexer = indexer or DiffSignatureIndexer()
        self.weights = weights or SimilarityWeights.from_config()
        self.threshold = (
            config_provider.similarity_threshold if threshold is None else threshold
        )
        self.candidate_limit = candidate_limit or config_provider.similarity_candidates

    async def get_exact(self, diff_hash: str) -> Optional[CacheEntry]:
        try:
            row = await self.store.get(diff_hash)
        except StoreError:
            logger.exception(f"Cache lookup failed for {diff_hash}, treating as miss")
            return None
        if row is None or not row.analysis:
            return None
        return CacheEntry.from_row(row)

    async def find_similar(
        self, diff: str, threshold: Optional[float] = None
    ) -> Optional[CacheEntry]:
        """
        Best scoring recent entry strictly above ``threshold``.

        Candidates come newest first, so on equal scores the most recent
        entry wins.
        """
        threshold = self.threshold if threshold is None else threshold
        try:
            candidates = await self.store.list_recent(self.candidate_limit)
        except StoreError:
            logger.exception("Fuzzy cache lookup failed, treating as miss")
            return None

        signature = self.indexer.signature(diff)
        best_row = None
        best_score = 0.0
        for row in candidates:
            if not row.analysis:
                continue
            score = calculate_similarity(
                signature, self.indexer.signature(row.diff), self.weights
            )
            if score > threshold and score > best_score:
                best_row, best_score = row, score

        if best_row is None:
            return None
        logger.info(
            f"Similar cached analysis {best_row.diff_hash} matched with score {best_score:.3f}"
        )
        return CacheEntry.from_row(best_row, similarity=best_score)

    async def put(self, diff_hash: str, diff: str, analysis: dict) -> bool:
        try:
            written = await self.store.put(diff_hash, diff, analysis)
        except StoreError:
            logger.exception(f"Failed to cache analysis {diff_hash}")
            return False
        if not written:
            logger.debug(f"Cache entry {diff_hash} already present")
        return bool(written)
