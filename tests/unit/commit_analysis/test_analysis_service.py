import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from codelens.core.base_store import StoreError
from codelens.core.config_provider import config_provider
from codelens.modules.commit_analysis.analysis_cache import AnalysisCache
from codelens.modules.commit_analysis.analysis_cache_store import AnalysisCacheStore
from codelens.modules.commit_analysis.analysis_exceptions import (
    CommitSourceError,
    InvalidAnalysisRequestError,
)
from codelens.modules.commit_analysis.analysis_schema import (
    AnalysisSource,
    ChangeType,
    CodeChange,
    FallbackReason,
    default_analysis,
)
from codelens.modules.commit_analysis.analysis_service import (
    CommitAnalysisService,
    generate_summary,
)
from codelens.modules.commit_analysis.commit_analysis_model import CommitAnalysis
from codelens.modules.commit_analysis.commit_analysis_store import CommitAnalysisStore
from codelens.modules.commit_analysis.diff_signature import SimilarityWeights
from codelens.modules.intelligence.provider.provider_schema import ModelCompletion

pytestmark = pytest.mark.unit

JS_DIFF_V1 = """diff --git a/src/foo.js b/src/foo.js
+function foo() {
+  return 1;
+}"""

JS_DIFF_V2 = JS_DIFF_V1.replace("return 1", "return 2")


@pytest.fixture
def cache(cache_store):
    return AnalysisCache(
        cache_store, weights=SimilarityWeights(), threshold=0.8, candidate_limit=100
    )


@pytest.fixture
def good_provider(make_provider, valid_analysis, fence):
    return make_provider(ModelCompletion(text=fence(valid_analysis), input_tokens=1, output_tokens=1))


@pytest.fixture
def service(good_provider, github_service, analysis_store, cache):
    return CommitAnalysisService(
        provider_service=good_provider,
        github_service=github_service,
        analysis_store=analysis_store,
        cache=cache,
    )


class TestAnalyzeDiff:
    @pytest.mark.asyncio
    async def test_lockfile_only_diff_short_circuits(self, service, good_provider, lockfile_diff):
        result = await service.analyze_diff(lockfile_diff)

        assert result.source == AnalysisSource.DEFAULT
        assert result.fallback_reason == FallbackReason.EMPTY_DIFF
        assert result.error is False
        assert result.analysis == default_analysis()
        assert good_provider.calls == 0

    @pytest.mark.asyncio
    async def test_generation_is_validated_and_cached(
        self, service, good_provider, cache_store, source_diff
    ):
        result = await service.analyze_diff(source_diff)

        assert result.source == AnalysisSource.GENERATED
        assert result.error is False
        assert result.analysis.code_changes[0].type == ChangeType.FEATURE
        assert good_provider.calls == 1
        assert "Git Diff to analyze:" in good_provider.prompts[0]
        assert "+def greet(name):" in good_provider.prompts[0]
        assert list(cache_store.rows) == [result.diff_hash]

    @pytest.mark.asyncio
    async def test_second_run_is_an_exact_cache_hit(self, service, good_provider, source_diff):
        first = await service.analyze_diff(source_diff)
        second = await service.analyze_diff(source_diff)

        assert second.source == AnalysisSource.CACHE_EXACT
        assert second.analysis == first.analysis
        assert good_provider.calls == 1

    @pytest.mark.asyncio
    async def test_similar_diff_is_a_fuzzy_cache_hit(self, service, good_provider):
        await service.analyze_diff(JS_DIFF_V1)

        result = await service.analyze_diff(JS_DIFF_V2)

        assert result.source == AnalysisSource.CACHE_SIMILAR
        assert good_provider.calls == 1

    @pytest.mark.asyncio
    async def test_force_skips_cache_but_still_writes(
        self, service, good_provider, cache_store, source_diff
    ):
        await service.analyze_diff(source_diff)
        result = await service.analyze_diff(source_diff, force=True)

        assert result.source == AnalysisSource.GENERATED
        assert good_provider.calls == 2
        assert cache_store.put_calls == 2
        assert len(cache_store.rows) == 1

    @pytest.mark.asyncio
    async def test_use_cache_false_never_touches_cache(self, service, cache_store, source_diff):
        await service.analyze_diff(source_diff, use_cache=False)

        assert cache_store.put_calls == 0

    @pytest.mark.asyncio
    async def test_model_error_defaults_with_error(
        self, make_provider, cache_store, cache, source_diff
    ):
        service = CommitAnalysisService(
            provider_service=make_provider(ModelCompletion.failed("No API key configured")),
            cache=cache,
        )

        result = await service.analyze_diff(source_diff)

        assert result.source == AnalysisSource.DEFAULT
        assert result.fallback_reason == FallbackReason.MODEL_UNAVAILABLE
        assert result.error is True
        assert result.details == "No API key configured"
        assert cache_store.rows == {}

    @pytest.mark.asyncio
    async def test_empty_model_text_is_not_an_error(self, make_provider, cache, source_diff):
        service = CommitAnalysisService(
            provider_service=make_provider(ModelCompletion(text="  ")), cache=cache
        )

        result = await service.analyze_diff(source_diff)

        assert result.fallback_reason == FallbackReason.EMPTY_RESPONSE
        assert result.error is False
        assert result.analysis == default_analysis()

    @pytest.mark.asyncio
    async def test_unparseable_response_defaults(self, make_provider, cache_store, cache, source_diff):
        service = CommitAnalysisService(
            provider_service=make_provider(ModelCompletion(text="I cannot help with that")),
            cache=cache,
        )

        result = await service.analyze_diff(source_diff)

        assert result.fallback_reason == FallbackReason.UNPARSEABLE_RESPONSE
        assert result.error is True
        assert cache_store.rows == {}

    @pytest.mark.asyncio
    async def test_repaired_response_is_cached(
        self, make_provider, cache_store, cache, valid_analysis, fence, source_diff
    ):
        valid_analysis["codeChanges"][1]["type"] = "Bugfix"
        service = CommitAnalysisService(
            provider_service=make_provider(ModelCompletion(text=fence(valid_analysis))),
            cache=cache,
        )

        result = await service.analyze_diff(source_diff)

        assert result.source == AnalysisSource.GENERATED
        assert result.analysis.code_changes[1].type == ChangeType.CHORE
        assert len(cache_store.rows) == 1

    @pytest.mark.asyncio
    async def test_cache_failures_do_not_abort(
        self, good_provider, failing_cache_store, source_diff
    ):
        service = CommitAnalysisService(
            provider_service=good_provider,
            cache=AnalysisCache(failing_cache_store, threshold=0.8, candidate_limit=10),
        )

        result = await service.analyze_diff(source_diff)

        assert result.source == AnalysisSource.GENERATED


class TestAnalyzeCommit:
    @pytest.mark.asyncio
    async def test_generates_persists_and_summarizes(
        self, service, analysis_store, github_service
    ):
        result = await service.analyze_commit("octo", "hello", "abc123")

        assert result.source == AnalysisSource.GENERATED
        assert result.summary == "Added a greet function for friendly messages"
        assert github_service.diff_calls == 1
        assert github_service.commit_calls == 1
        record = analysis_store.records[("octo", "hello", "abc123")]
        assert record.summary == result.summary
        assert record.code_changes[0]["type"] == "Feature"

    @pytest.mark.asyncio
    async def test_second_call_returns_persisted_analysis(
        self, service, good_provider, github_service
    ):
        first = await service.analyze_commit("octo", "hello", "abc123")
        second = await service.analyze_commit("octo", "hello", "abc123")

        assert second.source == AnalysisSource.PERSISTED
        assert second.analysis == first.analysis
        assert second.summary == first.summary
        assert good_provider.calls == 1
        assert github_service.diff_calls == 1

    @pytest.mark.asyncio
    async def test_force_regenerates_and_upserts(self, service, good_provider, analysis_store):
        await service.analyze_commit("octo", "hello", "abc123")
        result = await service.analyze_commit("octo", "hello", "abc123", force=True)

        assert result.source == AnalysisSource.GENERATED
        assert good_provider.calls == 2
        assert analysis_store.upsert_calls == 2
        assert len(analysis_store.records) == 1

    @pytest.mark.asyncio
    async def test_cache_hit_is_persisted(self, service, analysis_store, good_provider):
        await service.analyze_commit("octo", "hello", "abc123")
        result = await service.analyze_commit("octo", "hello", "def456")

        assert result.source == AnalysisSource.CACHE_EXACT
        assert ("octo", "hello", "def456") in analysis_store.records
        assert good_provider.calls == 1

    @pytest.mark.asyncio
    async def test_default_is_not_persisted(
        self, make_provider, make_github, analysis_store, cache, lockfile_diff
    ):
        service = CommitAnalysisService(
            provider_service=make_provider(),
            github_service=make_github(diff=lockfile_diff, message="Bump lockfile version"),
            analysis_store=analysis_store,
            cache=cache,
        )

        result = await service.analyze_commit("octo", "hello", "abc123")

        assert result.fallback_reason == FallbackReason.EMPTY_DIFF
        assert result.summary == "Bump lockfile version"
        assert analysis_store.records == {}

    @pytest.mark.asyncio
    async def test_record_without_code_changes_is_not_found(
        self, service, analysis_store, good_provider
    ):
        analysis_store.records[("octo", "hello", "abc123")] = CommitAnalysis(
            owner="octo", repo="hello", commit_sha="abc123", code_changes=[], schema_version=2
        )

        result = await service.analyze_commit("octo", "hello", "abc123")

        assert result.source == AnalysisSource.GENERATED
        assert good_provider.calls == 1

    @pytest.mark.asyncio
    async def test_legacy_record_is_migrated(
        self, service, analysis_store, good_provider, valid_analysis
    ):
        changes = valid_analysis["codeChanges"]
        changes[1]["type"] = "New Feature"
        analysis_store.records[("octo", "hello", "abc123")] = CommitAnalysis(
            owner="octo",
            repo="hello",
            commit_sha="abc123",
            code_changes=changes,
            architecture_diagram=valid_analysis["architectureDiagram"],
            concept_takeaway=valid_analysis["conceptTakeaway"],
            summary="Old summary",
            schema_version=1,
        )

        result = await service.analyze_commit("octo", "hello", "abc123")

        assert result.source == AnalysisSource.PERSISTED
        assert result.analysis.code_changes[0].type == ChangeType.FEATURE
        assert result.summary == "Old summary"
        assert good_provider.calls == 0

    @pytest.mark.asyncio
    async def test_persistence_errors_are_swallowed(self, service, analysis_store):
        async def broken(*args, **kwargs):
            raise StoreError("database down")

        analysis_store.find_by_repo_and_commit = broken
        analysis_store.upsert = broken

        result = await service.analyze_commit("octo", "hello", "abc123")

        assert result.source == AnalysisSource.GENERATED
        assert result.error is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "owner, repo, sha", [("", "r", "s"), ("o", "  ", "s"), ("o", "r", None)]
    )
    async def test_blank_identifiers_are_rejected(self, service, owner, repo, sha):
        with pytest.raises(InvalidAnalysisRequestError):
            await service.analyze_commit(owner, repo, sha)

    @pytest.mark.asyncio
    async def test_github_failure_propagates(
        self, good_provider, make_github, analysis_store, cache
    ):
        service = CommitAnalysisService(
            provider_service=good_provider,
            github_service=make_github(error=CommitSourceError("not found", 404)),
            analysis_store=analysis_store,
            cache=cache,
        )

        with pytest.raises(CommitSourceError):
            await service.analyze_commit("octo", "hello", "missing")
        assert good_provider.calls == 0


def change(change_type, summary):
    return CodeChange(
        type=change_type, file="a.py", lines="1-1", summary=summary, explanation="e"
    )


def test_summary_prefers_feature_or_refactor():
    changes = [
        change(ChangeType.LOGIC, "Logic change"),
        change(ChangeType.REFACTOR, "Split the parser into smaller strategy functions"),
    ]

    assert (
        generate_summary(changes, "commit message")
        == "Split the parser into smaller strategy functions"
    )


def test_summary_is_truncated_to_twelve_words():
    long_summary = " ".join(f"w{i}" for i in range(20))

    summary = generate_summary([change(ChangeType.FEATURE, long_summary)], "msg")

    assert summary.split(" ") == [f"w{i}" for i in range(12)]


def test_summary_falls_back_to_commit_message():
    message = "Fix typo in the readme and also update a few other unrelated docs pages"

    summary = generate_summary([change(ChangeType.CHORE, "Typo")], message)

    assert summary == "Fix typo in the readme and also update a few other unrelated"


@pytest.mark.asyncio
async def test_unreachable_database_still_generates(good_provider, github_service):
    session = MagicMock()
    session.execute = AsyncMock(side_effect=ConnectionRefusedError(111, "Connect call failed"))
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    service = CommitAnalysisService(
        provider_service=good_provider,
        github_service=github_service,
        analysis_store=CommitAnalysisStore(session),
        cache=AnalysisCache(AnalysisCacheStore(session), threshold=0.8, candidate_limit=10),
    )

    result = await service.analyze_commit("octo", "hello", "abc123")

    assert result.source == AnalysisSource.GENERATED
    assert result.error is False
    assert good_provider.calls == 1


def test_token_budget_comes_from_configuration(good_provider):
    with patch.object(config_provider, "token_budget", 10):
        service = CommitAnalysisService(provider_service=good_provider)

    assert service.preprocessor.token_budget == 10


class DiffFailsFirstGithub:
    def __init__(self):
        self.metadata_cancelled = False

    async def get_commit_diff(self, owner, repo, sha):
        raise CommitSourceError("Not Found", 404)

    async def get_commit(self, owner, repo, sha):
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.metadata_cancelled = True
            raise
        return {}


@pytest.mark.asyncio
async def test_failed_diff_fetch_cancels_metadata_fetch(good_provider):
    github = DiffFailsFirstGithub()
    service = CommitAnalysisService(provider_service=good_provider, github_service=github)

    with pytest.raises(CommitSourceError):
        await service.analyze_commit("octo", "hello", "abc123")

    assert github.metadata_cancelled
    assert good_provider.calls == 0
