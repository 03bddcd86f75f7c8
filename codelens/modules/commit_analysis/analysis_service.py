import asyncio
from typing import List, Optional

from codelens.core.base_store import StoreError
from codelens.core.config_provider import config_provider
from codelens.modules.code_provider.github.github_service import (
    GithubService,
    commit_message_of,
)
from codelens.modules.commit_analysis.analysis_cache import AnalysisCache, CacheEntry
from codelens.modules.commit_analysis.analysis_exceptions import (
    InvalidAnalysisRequestError,
)
from codelens.modules.commit_analysis.analysis_prompts import build_analysis_prompt
from codelens.modules.commit_analysis.analysis_schema import (
    SCHEMA_VERSION,
    Analysis,
    AnalysisSource,
    ChangeType,
    CodeChange,
    FallbackReason,
    PipelineResult,
)
from codelens.modules.commit_analysis.analysis_validator import AnalysisValidator
from codelens.modules.commit_analysis.commit_analysis_model import CommitAnalysis
from codelens.modules.commit_analysis.commit_analysis_store import CommitAnalysisStore
from codelens.modules.commit_analysis.diff_preprocessor import DiffPreprocessor
from codelens.modules.commit_analysis.diff_signature import generate_diff_hash
from codelens.modules.commit_analysis.response_parser import ResponseParser
from codelens.modules.intelligence.provider.provider_service import ProviderService
from codelens.modules.utils.logger import log_context, setup_logger

logger = setup_logger(__name__)

SUMMARY_WORD_LIMIT = 12
SUMMARY_TYPES = (ChangeType.FEATURE, ChangeType.REFACTOR)


def generate_summary(code_changes: List[CodeChange], commit_message: str) -> str:
    """First Feature/Refactor summary, else the commit message, capped at 12 words."""
    for change in code_changes:
        if change.type in SUMMARY_TYPES and change.summary:
            return " ".join(change.summary.split(" ")[:SUMMARY_WORD_LIMIT])
    return " ".join((commit_message or "").split(" ")[:SUMMARY_WORD_LIMIT])


class CommitAnalysisService:
    """
    Turns a commit (or a raw diff) into an Analysis.

    Order of resolution: persisted record, exact cache hit, similar cache
    hit, fresh generation. Every path ends with a complete Analysis; the
    returned ``PipelineResult`` says which path was taken and why a default
    was used, if it was.
    """

    def __init__(
        self,
        provider_service: ProviderService,
        github_service: Optional[GithubService] = None,
        analysis_store: Optional[CommitAnalysisStore] = None,
        cache: Optional[AnalysisCache] = None,
        preprocessor: Optional[DiffPreprocessor] = None,
        parser: Optional[ResponseParser] = None,
        validator: Optional[AnalysisValidator] = None,
    ):
        self.provider_service = provider_service
        self.github_service = github_service
        self.analysis_store = analysis_store
        self.cache = cache
        self.preprocessor = preprocessor or DiffPreprocessor(
            token_budget=config_provider.token_budget
        )
        self.parser = parser or ResponseParser()
        self.validator = validator or AnalysisValidator()

    async def analyze_commit(
        self, owner: str, repo: str, sha: str, force: bool = False
    ) -> PipelineResult:
        """
        Analyze one commit and persist the result.

        Raises InvalidAnalysisRequestError for blank identifiers and
        CommitSourceError when GitHub cannot provide the commit.
        """
        owner, repo, sha = self._require_identifiers(owner, repo, sha)

        with log_context(owner=owner, repo=repo, commit_sha=sha):
            if not force:
                persisted = await self._load_persisted(owner, repo, sha)
                if persisted is not None:
                    return persisted
            else:
                logger.info("Forced regeneration requested, skipping stored results")

            if self.github_service is None:
                raise RuntimeError("CommitAnalysisService needs a GithubService")
            diff, commit = await self._fetch_commit(owner, repo, sha)
            commit_message = commit_message_of(commit)

            result = await self.analyze_diff(diff, force=force)
            result.summary = generate_summary(
                result.analysis.code_changes, commit_message
            )
            if result.source == AnalysisSource.DEFAULT:
                logger.warning(
                    f"Returning default analysis ({result.fallback_reason.value})"
                )
                return result

            await self._persist(owner, repo, sha, result.analysis, result.summary)
            return result

    async def analyze_diff(
        self, diff: str, force: bool = False, use_cache: bool = True
    ) -> PipelineResult:
        """Run the diff pipeline without touching persisted commit records."""
        filtered = self.preprocessor.filter(diff)
        if not filtered:
            logger.warning("No meaningful changes found in diff")
            return PipelineResult.default(
                FallbackReason.EMPTY_DIFF, details="No meaningful changes found in diff"
            )

        diff_hash = generate_diff_hash(filtered)
        logger.info(f"Generated diff hash: {diff_hash}")
        cache = self.cache if use_cache else None

        if cache is not None and not force:
            cached = await self._lookup_cache(cache, diff_hash, filtered)
            if cached is not None:
                return cached
            logger.info("No cached analysis found, generating new analysis")

        prompt = build_analysis_prompt(self.preprocessor.reduce(filtered))
        completion = await self.provider_service.complete(prompt)

        if completion.is_empty:
            if completion.error:
                logger.warning(f"Model unavailable: {completion.error}")
                return PipelineResult.default(
                    FallbackReason.MODEL_UNAVAILABLE,
                    details=completion.error,
                    diff_hash=diff_hash,
                )
            logger.warning("Model returned an empty response")
            return PipelineResult.default(
                FallbackReason.EMPTY_RESPONSE, diff_hash=diff_hash
            )

        parsed = self.parser.extract_json(completion.text)
        if parsed is None:
            return PipelineResult.default(
                FallbackReason.UNPARSEABLE_RESPONSE,
                details="No JSON object found in model response",
                diff_hash=diff_hash,
            )

        outcome = self.validator.validate(parsed)
        if outcome.is_default:
            return PipelineResult.default(
                FallbackReason.INVALID_RESPONSE,
                details="; ".join(outcome.errors) or None,
                diff_hash=diff_hash,
            )

        logger.info(f"Generated analysis ({outcome.status.value})")
        if cache is not None:
            await cache.put(diff_hash, filtered, outcome.analysis.to_json_dict())

        return PipelineResult(
            analysis=outcome.analysis,
            source=AnalysisSource.GENERATED,
            diff_hash=diff_hash,
        )

    async def _fetch_commit(self, owner: str, repo: str, sha: str):
        """Fetch diff and metadata concurrently; one failure cancels the other."""
        tasks = [
            asyncio.create_task(self.github_service.get_commit_diff(owner, repo, sha)),
            asyncio.create_task(self.github_service.get_commit(owner, repo, sha)),
        ]
        try:
            diff, commit = await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return diff, commit

    async def _lookup_cache(
        self, cache: AnalysisCache, diff_hash: str, filtered: str
    ) -> Optional[PipelineResult]:
        exact = await cache.get_exact(diff_hash)
        analysis = self._analysis_from_cache(exact)
        if analysis is not None:
            logger.info("Found exact cached analysis match")
            return PipelineResult(
                analysis=analysis, source=AnalysisSource.CACHE_EXACT, diff_hash=diff_hash
            )

        similar = await cache.find_similar(filtered)
        analysis = self._analysis_from_cache(similar)
        if analysis is not None:
            logger.info(f"Found similar cached analysis {similar.diff_hash}")
            return PipelineResult(
                analysis=analysis,
                source=AnalysisSource.CACHE_SIMILAR,
                diff_hash=diff_hash,
            )
        return None

    def _analysis_from_cache(self, entry: Optional[CacheEntry]) -> Optional[Analysis]:
        if entry is None:
            return None
        outcome = self.validator.validate(entry.analysis)
        if outcome.is_default:
            logger.warning(f"Ignoring unusable cache entry {entry.diff_hash}")
            return None
        return outcome.analysis

    async def _load_persisted(
        self, owner: str, repo: str, sha: str
    ) -> Optional[PipelineResult]:
        if self.analysis_store is None:
            return None
        try:
            record = await self.analysis_store.find_by_repo_and_commit(owner, repo, sha)
        except StoreError:
            logger.exception("Failed to read persisted analysis, regenerating")
            return None

        # Only records with at least one code change count as found
        if record is None or not record.code_changes:
            return None

        analysis = self._analysis_from_record(record)
        if analysis is None:
            return None
        logger.info("Found existing analysis with code changes")
        return PipelineResult(
            analysis=analysis, source=AnalysisSource.PERSISTED, summary=record.summary
        )

    def _analysis_from_record(self, record: CommitAnalysis) -> Optional[Analysis]:
        data = record.to_analysis_dict()
        if (record.schema_version or 0) < SCHEMA_VERSION:
            logger.info(
                f"Migrating persisted analysis from schema version {record.schema_version}"
            )
        outcome = self.validator.validate(data)
        if outcome.is_default:
            logger.warning("Persisted analysis is unusable, regenerating")
            return None
        return outcome.analysis

    async def _persist(
        self, owner: str, repo: str, sha: str, analysis: Analysis, summary: str
    ) -> None:
        if self.analysis_store is None:
            return
        try:
            await self.analysis_store.upsert(owner, repo, sha, analysis, summary)
            logger.info("Saved analysis")
        except StoreError:
            logger.exception("Failed to save analysis, returning it unsaved")

    @staticmethod
    def _require_identifiers(owner: str, repo: str, sha: str):
        missing = [
            name
            for name, value in (("owner", owner), ("repo", repo), ("sha", sha))
            if not value or not str(value).strip()
        ]
        if missing:
            raise InvalidAnalysisRequestError(
                f"Missing required parameter(s): {', '.join(missing)}"
            )
        return owner.strip(), repo.strip(), sha.strip()
