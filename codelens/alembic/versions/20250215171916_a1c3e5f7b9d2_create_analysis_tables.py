"""create analysis_cache and commit_analyses tables

Revision ID: 20250215171916_a1c3e5f7b9d2
Revises:
Create Date: 2025-02-15 17:19:16.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20250215171916_a1c3e5f7b9d2"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "analysis_cache",
        sa.Column("diff_hash", sa.String(length=64), nullable=False),
        sa.Column("diff", sa.Text(), nullable=False),
        sa.Column("analysis", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("diff_hash"),
    )
    op.create_index(
        op.f("ix_analysis_cache_created_at"),
        "analysis_cache",
        ["created_at"],
        unique=False,
    )

    op.create_table(
        "commit_analyses",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("owner", sa.String(length=255), nullable=False),
        sa.Column("repo", sa.String(length=255), nullable=False),
        sa.Column("commit_sha", sa.String(length=64), nullable=False),
        sa.Column(
            "code_changes", postgresql.JSONB(astext_type=sa.Text()), nullable=False
        ),
        sa.Column(
            "architecture_diagram",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
        ),
        sa.Column(
            "concept_takeaway", postgresql.JSONB(astext_type=sa.Text()), nullable=True
        ),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column(
            "schema_version", sa.Integer(), server_default="2", nullable=False
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "owner", "repo", "commit_sha", name="uq_commit_analyses_owner_repo_sha"
        ),
    )
    op.create_index(
        op.f("ix_commit_analyses_owner"), "commit_analyses", ["owner"], unique=False
    )
    op.create_index(
        op.f("ix_commit_analyses_repo"), "commit_analyses", ["repo"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_commit_analyses_repo"), table_name="commit_analyses")
    op.drop_index(op.f("ix_commit_analyses_owner"), table_name="commit_analyses")
    op.drop_table("commit_analyses")
    op.drop_index(op.f("ix_analysis_cache_created_at"), table_name="analysis_cache")
    op.drop_table("analysis_cache")
