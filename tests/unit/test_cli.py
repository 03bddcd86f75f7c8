from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from codelens.cli import cli
from codelens.core.base_store import StoreError
from codelens.modules.commit_analysis.commit_analysis_store import CommitAnalysisStore
from codelens.modules.intelligence.provider.provider_schema import ModelCompletion
from codelens.modules.intelligence.provider.provider_service import ProviderService

pytestmark = pytest.mark.unit


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fake_database():
    with patch(
        "codelens.core.database.get_async_session_factory",
        return_value=MagicMock(),
    ), patch("codelens.core.database.dispose_engine", new=AsyncMock()) as dispose:
        yield dispose


def test_version(runner):
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert "codelens" in result.output


def test_analyze_diff_without_cache(runner, make_provider, valid_analysis, fence, source_diff):
    provider = make_provider(ModelCompletion(text=fence(valid_analysis)))
    with patch.object(ProviderService, "create", return_value=provider) as create:
        result = runner.invoke(
            cli, ["analyze-diff", "-", "--no-cache", "-m", "openai/gpt-4o"], input=source_diff
        )

    assert result.exit_code == 0
    assert '"codeChanges"' in result.output
    assert "source: generated" in result.output
    create.assert_called_once_with("openai/gpt-4o")


def test_analyze_diff_exits_nonzero_on_model_failure(runner, make_provider, source_diff):
    provider = make_provider(ModelCompletion.failed("No API key configured"))
    with patch.object(ProviderService, "create", return_value=provider):
        result = runner.invoke(cli, ["analyze-diff", "-", "--no-cache"], input=source_diff)

    assert result.exit_code == 1
    assert "fallback: model_unavailable (No API key configured)" in result.output


def test_analyze_diff_of_lockfile_only_change_is_not_an_error(
    runner, make_provider, lockfile_diff
):
    provider = make_provider()
    with patch.object(ProviderService, "create", return_value=provider):
        result = runner.invoke(cli, ["analyze-diff", "-", "--no-cache"], input=lockfile_diff)

    assert result.exit_code == 0
    assert "fallback: empty_diff" in result.output
    assert provider.calls == 0


def test_clear_analysis(runner, fake_database):
    with patch.object(CommitAnalysisStore, "delete_all", new=AsyncMock(return_value=3)):
        result = runner.invoke(cli, ["clear-analysis", "--yes"])

    assert result.exit_code == 0
    assert "Deleted 3 commit analyses" in result.output
    fake_database.assert_awaited_once()


def test_clear_analysis_requires_confirmation(runner, fake_database):
    with patch.object(CommitAnalysisStore, "delete_all", new=AsyncMock()) as delete_all:
        result = runner.invoke(cli, ["clear-analysis"], input="n\n")

    assert result.exit_code != 0
    delete_all.assert_not_called()


def test_clear_analysis_reports_store_errors(runner, fake_database):
    with patch.object(
        CommitAnalysisStore, "delete_all", new=AsyncMock(side_effect=StoreError("down"))
    ):
        result = runner.invoke(cli, ["clear-analysis", "--yes"])

    assert result.exit_code == 1
    assert "Error clearing analyses: down" in result.output


def test_list_analyses(runner, fake_database):
    record = SimpleNamespace(
        owner="octo",
        repo="hello",
        commit_sha="abc1234def",
        schema_version=2,
        code_changes=[{}, {}],
        summary="Added a greet function",
    )
    with patch.object(CommitAnalysisStore, "list_all", new=AsyncMock(return_value=[record])) as list_all:
        result = runner.invoke(cli, ["list-analyses", "-n", "5"])

    assert result.exit_code == 0
    assert "octo/hello@abc1234  v2  2 changes  Added a greet function" in result.output
    list_all.assert_awaited_once_with(5)


def test_list_analyses_empty(runner, fake_database):
    with patch.object(CommitAnalysisStore, "list_all", new=AsyncMock(return_value=[])):
        result = runner.invoke(cli, ["list-analyses"])

    assert result.exit_code == 0
    assert "No commit analyses stored" in result.output
