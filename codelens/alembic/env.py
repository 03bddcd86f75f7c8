import asyncio
import time
from logging.config import fileConfig

from alembic import context
from alembic.operations import ops
from dotenv import load_dotenv
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from codelens.core.database import Base, get_async_database_url
from codelens.modules.commit_analysis.analysis_cache_model import AnalysisCacheEntry
from codelens.modules.commit_analysis.commit_analysis_model import CommitAnalysis

# Register all models with SQLAlchemy by referencing them
_MODELS = (AnalysisCacheEntry, CommitAnalysis)

# Load environment variables from .env
load_dotenv(override=True)

config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def process_revision_directives(context, revision, directives):
    """Automatically prepend timestamp to migration filenames."""
    for directive in directives:
        if isinstance(directive, ops.MigrationScript):
            timestamp = time.strftime("%Y%m%d%H%M%S")
            directive.rev_id = f"{timestamp}_{directive.rev_id}"


def do_run_migrations(connection):
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        version_table="alembic_version",
        compare_type=True,
        process_revision_directives=process_revision_directives,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online():
    connectable = create_async_engine(get_async_database_url(), poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    raise Exception("Offline migrations not supported")
else:
    asyncio.run(run_migrations_online())
