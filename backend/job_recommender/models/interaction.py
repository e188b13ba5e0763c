"""
Interaction and search analytics models.

job_interactions is append-only: the engine inserts one row per tracked
action and never updates or deletes. Several rows per (user, job) pair are
expected and aggregated at query time.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func
from job_recommender.database import Base
import uuid


class JobInteraction(Base):
    __tablename__ = "job_interactions"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Text, nullable=False, index=True)
    job_id = Column(
        UUID(as_uuid=False),
        ForeignKey("job_posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    interaction_type = Column(Text, nullable=False, index=True)
    session_id = Column(Text, nullable=True, index=True)
    # {timeSpent: seconds, scrollDepth: percent, source: str}
    metadata_ = Column("metadata", JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        Index("idx_job_interactions_user_job", "user_id", "job_id"),
    )


class SearchQuery(Base):
    """Search history used for analytics and top-skill personalization."""

    __tablename__ = "search_queries"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Text, nullable=True, index=True)
    session_id = Column(Text, nullable=True, index=True)
    job_title = Column(Text, nullable=False)
    skills = Column(JSONB, nullable=False)
    filters = Column(JSONB, nullable=True)
    results_count = Column(Integer, default=0)
    results_shown = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
