"""
Job Post Model - SQLAlchemy ORM model for the job posting catalog

Postings are written by an external ingestion process; the recommendation
engine only reads them. Three generated full-text columns back the hybrid
search query:

    fts                   weighted: title (A), job_function/company (B), description (C)
    fts_title             title only
    fts_description_text  description only

A posting whose expire_at has passed is excluded from search.
"""

from sqlalchemy import Column, Computed, Date, DateTime, Index, Text
from sqlalchemy.dialects.postgresql import JSONB, TSVECTOR, UUID
from sqlalchemy.sql import func
from job_recommender.database import Base
import uuid


FTS_EXPRESSION = (
    "setweight(to_tsvector('english'::regconfig, coalesce(title, '')), 'A') || "
    "setweight(to_tsvector('english'::regconfig, coalesce(job_function, '')), 'B') || "
    "setweight(to_tsvector('english'::regconfig, coalesce(company_name, '')), 'B') || "
    "setweight(to_tsvector('english'::regconfig, coalesce(description_text, '')), 'C')"
)


class JobPost(Base):
    """
    Job posting entity.

    Attributes:
        id: UUID primary key
        title: Job title
        company_name/company_logo: Employer details
        location: Free-text location (trigram indexed for LIKE filters)
        salary_info: Structured salary data (JSON, optional)
        posted_at/expire_at: Posting and expiry dates
        description_text/description_html: Plain and rendered description
        employment_type: e.g. "full-time", "contract"
        job_function: Functional area used in skill matching
        source/link/apply_url: Provenance and application links
    """

    __tablename__ = "job_posts"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    link = Column(Text, nullable=True)
    title = Column(Text, nullable=True)
    company_name = Column(Text, nullable=True)
    company_logo = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    salary_info = Column(JSONB, nullable=True)
    posted_at = Column(Date, nullable=True, index=True)
    description_html = Column(Text, nullable=True)
    description_text = Column(Text, nullable=True)
    apply_url = Column(Text, nullable=True)
    job_function = Column(Text, nullable=True)
    employment_type = Column(Text, nullable=True)
    expire_at = Column(Date, nullable=True)
    source = Column(Text, nullable=True)
    fts = Column(TSVECTOR, Computed(FTS_EXPRESSION, persisted=True))
    fts_title = Column(
        TSVECTOR,
        Computed("to_tsvector('english'::regconfig, coalesce(title, ''))", persisted=True),
    )
    fts_description_text = Column(
        TSVECTOR,
        Computed("to_tsvector('english'::regconfig, coalesce(description_text, ''))", persisted=True),
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_job_posts_fts", "fts", postgresql_using="gin"),
        Index("idx_job_posts_fts_title", "fts_title", postgresql_using="gin"),
        Index("idx_job_posts_fts_description_text", "fts_description_text", postgresql_using="gin"),
        Index(
            "idx_job_posts_title_trgm",
            "title",
            postgresql_using="gin",
            postgresql_ops={"title": "gin_trgm_ops"},
        ),
        Index(
            "idx_job_posts_location_trgm",
            "location",
            postgresql_using="gin",
            postgresql_ops={"location": "gin_trgm_ops"},
        ),
    )
