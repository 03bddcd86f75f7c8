"""CodeLens CLI entry point."""

import asyncio
import json
import sys

import click

from codelens import __version__
from codelens.core.base_store import StoreError
from codelens.core.config_provider import ConfigurationError


@click.group()
@click.version_option(version=__version__, prog_name="codelens")
def cli():
    """CodeLens - AI explanations of git commits.

    Maintenance and offline analysis commands.
    """
    pass


@cli.command("analyze-diff")
@click.argument("diff_file", type=click.File("r"))
@click.option("--model", "-m", default=None, help="LLM model to use")
@click.option(
    "--no-cache",
    is_flag=True,
    default=False,
    help="Skip the analysis cache (no database needed)",
)
def analyze_diff(diff_file, model: str | None, no_cache: bool):
    """Analyze a unified diff read from DIFF_FILE ('-' for stdin).

    Prints the analysis JSON to stdout.

    Examples:

        git show HEAD | codelens analyze-diff - --no-cache

        codelens analyze-diff change.diff --model openai/gpt-4o
    """
    from codelens.modules.commit_analysis.analysis_service import (
        CommitAnalysisService,
    )
    from codelens.modules.intelligence.provider.provider_service import (
        ProviderService,
    )

    diff = diff_file.read()

    async def run():
        provider_service = ProviderService.create(model)
        if no_cache:
            service = CommitAnalysisService(provider_service=provider_service)
            return await service.analyze_diff(diff, use_cache=False)

        from codelens.core.database import dispose_engine, get_async_session_factory
        from codelens.modules.commit_analysis.analysis_cache import AnalysisCache
        from codelens.modules.commit_analysis.analysis_cache_store import (
            AnalysisCacheStore,
        )

        try:
            async with get_async_session_factory()() as db:
                service = CommitAnalysisService(
                    provider_service=provider_service,
                    cache=AnalysisCache(AnalysisCacheStore(db)),
                )
                return await service.analyze_diff(diff)
        finally:
            await dispose_engine()

    try:
        result = asyncio.run(run())
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(result.analysis.to_json_dict(), indent=2))
    click.echo(f"source: {result.source.value}", err=True)
    if result.fallback_reason is not None:
        click.echo(
            f"fallback: {result.fallback_reason.value}"
            + (f" ({result.details})" if result.details else ""),
            err=True,
        )
    if result.error:
        sys.exit(1)


@cli.command("clear-analysis")
@click.confirmation_option(prompt="Delete all stored commit analyses?")
def clear_analysis():
    """Delete every persisted commit analysis.

    The analysis cache is left untouched.
    """
    from codelens.core.database import dispose_engine, get_async_session_factory
    from codelens.modules.commit_analysis.commit_analysis_store import (
        CommitAnalysisStore,
    )

    async def run():
        try:
            async with get_async_session_factory()() as db:
                return await CommitAnalysisStore(db).delete_all()
        finally:
            await dispose_engine()

    try:
        deleted = asyncio.run(run())
    except (ConfigurationError, StoreError) as e:
        click.echo(f"Error clearing analyses: {e}", err=True)
        sys.exit(1)
    click.echo(f"Deleted {deleted} commit analyses")


@cli.command("list-analyses")
@click.option("--limit", "-n", default=50, show_default=True, help="Rows to show")
def list_analyses(limit: int):
    """List persisted commit analyses, most recently updated first."""
    from codelens.core.database import dispose_engine, get_async_session_factory
    from codelens.modules.commit_analysis.commit_analysis_store import (
        CommitAnalysisStore,
    )

    async def run():
        try:
            async with get_async_session_factory()() as db:
                return await CommitAnalysisStore(db).list_all(limit)
        finally:
            await dispose_engine()

    try:
        records = asyncio.run(run())
    except (ConfigurationError, StoreError) as e:
        click.echo(f"Error listing analyses: {e}", err=True)
        sys.exit(1)

    if not records:
        click.echo("No commit analyses stored")
        return
    for record in records:
        click.echo(
            f"{record.owner}/{record.repo}@{record.commit_sha[:7]}  "
            f"v{record.schema_version}  {len(record.code_changes or [])} changes  "
            f"{record.summary or ''}"
        )


def main():
    cli()


if __name__ == "__main__":
    main()
