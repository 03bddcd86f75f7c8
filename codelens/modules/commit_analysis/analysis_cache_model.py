from sqlalchemy import TIMESTAMP, Column, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from codelens.core.database import Base


class AnalysisCacheEntry(Base):
    __tablename__ = "analysis_cache"

    # md5 hex of the filtered diff
    diff_hash = Column(String(64), primary_key=True)
    diff = Column(Text, nullable=False)
    analysis = Column(JSONB, nullable=False)
    created_at = Column(
        TIMESTAMP(timezone=True), default=func.now(), nullable=False, index=True
    )
