from fastapi import HTTPException
from fastapi.responses import JSONResponse

from codelens.modules.commit_analysis.analysis_exceptions import (
    CommitSourceError,
    InvalidAnalysisRequestError,
)
from codelens.modules.commit_analysis.analysis_schema import (
    AnalysisResponse,
    AnalysisSource,
    PipelineResult,
    default_analysis,
)
from codelens.modules.commit_analysis.analysis_service import CommitAnalysisService
from codelens.modules.utils.logger import setup_logger

logger = setup_logger(__name__)


def to_response(result: PipelineResult) -> AnalysisResponse:
    return AnalysisResponse(
        error=result.error,
        details=result.details,
        analysis=result.analysis.to_json_dict(),
        summary=result.summary,
        source=result.source.value,
    )


def error_response(status_code: int, details: str) -> JSONResponse:
    body = AnalysisResponse(
        error=True,
        details=details,
        analysis=default_analysis().to_json_dict(),
        summary=None,
        source=AnalysisSource.DEFAULT.value,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


class CommitAnalysisController:
    def __init__(self, service: CommitAnalysisService):
        self.service = service

    async def get_commit_analysis(
        self, owner: str, repo: str, sha: str, force: bool = False
    ):
        try:
            result = await self.service.analyze_commit(owner, repo, sha, force=force)
        except InvalidAnalysisRequestError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except CommitSourceError as e:
            return error_response(502, str(e))
        except Exception as e:
            logger.exception(f"Error in commit analysis for {owner}/{repo}@{sha}")
            return error_response(500, str(e))
        return to_response(result)
