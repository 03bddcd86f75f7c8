from fastapi import APIRouter, Depends, Query

from codelens.modules.commit_analysis.analysis_controller import (
    CommitAnalysisController,
)
from codelens.modules.commit_analysis.analysis_dependencies import (
    get_commit_analysis_service,
)
from codelens.modules.commit_analysis.analysis_schema import AnalysisResponse
from codelens.modules.commit_analysis.analysis_service import CommitAnalysisService

router = APIRouter()


class CommitAnalysisAPI:
    @staticmethod
    @router.get(
        "/repos/{owner}/{repo}/commits/{sha}/analysis",
        response_model=AnalysisResponse,
    )
    async def get_commit_analysis(
        owner: str,
        repo: str,
        sha: str,
        force: bool = Query(
            False, description="Regenerate even if a stored analysis exists"
        ),
        service: CommitAnalysisService = Depends(get_commit_analysis_service),
    ):
        controller = CommitAnalysisController(service)
        return await controller.get_commit_analysis(owner, repo, sha, force=force)
