from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert

from codelens.core.base_store import DATABASE_ERRORS, BaseStore, StoreError
from codelens.modules.commit_analysis.analysis_schema import SCHEMA_VERSION, Analysis
from codelens.modules.commit_analysis.commit_analysis_model import CommitAnalysis
from codelens.modules.utils.logger import setup_logger

logger = setup_logger(__name__)


class CommitAnalysisStore(BaseStore):
    """Handles all database operations for the CommitAnalysis model."""

    async def find_by_repo_and_commit(
        self, owner: str, repo: str, commit_sha: str
    ) -> Optional[CommitAnalysis]:
        try:
            stmt = select(CommitAnalysis).where(
                CommitAnalysis.owner == owner,
                CommitAnalysis.repo == repo,
                CommitAnalysis.commit_sha == commit_sha,
            )
            result = await self.async_db.execute(stmt)
            return result.scalar_one_or_none()
        except DATABASE_ERRORS as e:
            await self.rollback()
            logger.error(
                f"Database error reading analysis for {owner}/{repo}@{commit_sha}: {e}"
            )
            raise StoreError(
                f"Failed to read analysis for {owner}/{repo}@{commit_sha}"
            ) from e

    async def upsert(
        self,
        owner: str,
        repo: str,
        commit_sha: str,
        analysis: Analysis,
        summary: Optional[str] = None,
    ) -> None:
        """Insert or overwrite the analysis for one commit. Last write wins."""
        payload = analysis.to_json_dict()
        now = datetime.now(timezone.utc)
        values = {
            "code_changes": payload["codeChanges"],
            "architecture_diagram": payload["architectureDiagram"],
            "concept_takeaway": payload["conceptTakeaway"],
            "summary": summary,
            "schema_version": SCHEMA_VERSION,
            "updated_at": now,
        }
        stmt = insert(CommitAnalysis).values(
            id=str(uuid4()),
            owner=owner,
            repo=repo,
            commit_sha=commit_sha,
            created_at=now,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["owner", "repo", "commit_sha"], set_=values
        )
        try:
            await self.async_db.execute(stmt)
            await self.async_db.commit()
        except DATABASE_ERRORS as e:
            await self.rollback()
            logger.error(
                f"Database error saving analysis for {owner}/{repo}@{commit_sha}: {e}"
            )
            raise StoreError(
                f"Failed to save analysis for {owner}/{repo}@{commit_sha}"
            ) from e

    async def delete_all(self) -> int:
        try:
            result = await self.async_db.execute(delete(CommitAnalysis))
            await self.async_db.commit()
            return result.rowcount
        except DATABASE_ERRORS as e:
            await self.rollback()
            logger.error(f"Database error clearing commit analyses: {e}")
            raise StoreError("Failed to clear commit analyses") from e

    async def list_all(self, limit: int = 50) -> List[CommitAnalysis]:
        try:
            stmt = (
                select(CommitAnalysis)
                .order_by(CommitAnalysis.updated_at.desc())
                .limit(limit)
            )
            result = await self.async_db.execute(stmt)
            return list(result.scalars().all())
        except DATABASE_ERRORS as e:
            await self.rollback()
            logger.error(f"Database error listing commit analyses: {e}")
            raise StoreError("Failed to list commit analyses") from e
