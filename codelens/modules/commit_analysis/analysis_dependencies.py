from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from codelens.core.database import get_async_db
from codelens.core.dependencies import get_github_service, get_provider_service
from codelens.modules.code_provider.github.github_service import GithubService
from codelens.modules.commit_analysis.analysis_cache import AnalysisCache
from codelens.modules.commit_analysis.analysis_cache_store import AnalysisCacheStore
from codelens.modules.commit_analysis.analysis_service import CommitAnalysisService
from codelens.modules.commit_analysis.commit_analysis_store import CommitAnalysisStore
from codelens.modules.intelligence.provider.provider_service import ProviderService


def get_commit_analysis_store(
    db: AsyncSession = Depends(get_async_db),
) -> CommitAnalysisStore:
    return CommitAnalysisStore(db)


def get_analysis_cache(db: AsyncSession = Depends(get_async_db)) -> AnalysisCache:
    return AnalysisCache(AnalysisCacheStore(db))


def get_commit_analysis_service(
    provider_service: ProviderService = Depends(get_provider_service),
    github_service: GithubService = Depends(get_github_service),
    analysis_store: CommitAnalysisStore = Depends(get_commit_analysis_store),
    cache: AnalysisCache = Depends(get_analysis_cache),
) -> CommitAnalysisService:
    return CommitAnalysisService(
        provider_service=provider_service,
        github_service=github_service,
        analysis_store=analysis_store,
        cache=cache,
    )
