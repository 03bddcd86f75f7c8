from sqlalchemy import TIMESTAMP, Column, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB

from codelens.core.database import Base


class CommitAnalysis(Base):
    __tablename__ = "commit_analyses"
    __table_args__ = (
        UniqueConstraint(
            "owner", "repo", "commit_sha", name="uq_commit_analyses_owner_repo_sha"
        ),
    )

    id = Column(String(36), primary_key=True)
    owner = Column(String(255), nullable=False, index=True)
    repo = Column(String(255), nullable=False, index=True)
    commit_sha = Column(String(64), nullable=False)

    code_changes = Column(JSONB, nullable=False)
    architecture_diagram = Column(JSONB)
    concept_takeaway = Column(JSONB)
    summary = Column(Text)
    schema_version = Column(Integer, nullable=False, default=2)

    created_at = Column(TIMESTAMP(timezone=True), default=func.now(), nullable=False)
    updated_at = Column(
        TIMESTAMP(timezone=True),
        default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def to_analysis_dict(self) -> dict:
        """Stored columns in the wire shape of an Analysis."""
        return {
            "codeChanges": self.code_changes or [],
            "architectureDiagram": self.architecture_diagram,
            "conceptTakeaway": self.concept_takeaway,
        }
