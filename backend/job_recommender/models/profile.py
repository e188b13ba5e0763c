"""
User Profile Model - Per-user job search preferences

One row per user (user_id is unique). Created lazily by the first
authenticated search or an explicit profile update, and merged on every
upsert: a column keeps its stored value when the incoming value is NULL.

Skills are capped at the 50 most recent entries by the service layer.
"""

from sqlalchemy import Column, DateTime, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func
from job_recommender.database import Base
import uuid


class UserProfile(Base):
    """
    User profile for recommendation personalization.

    Attributes:
        user_id: Caller identity supplied by the auth layer (unique)
        current_job_title/desired_job_title: Latest titles
        skills: JSON list of accumulated skills
        experience_level: e.g. "junior", "senior"
        preferred_locations/preferred_employment_types: Filter defaults
        salary_expectation: JSON {min, max, currency}
        excluded_companies: Companies never to recommend
        preferences: Free-form JSON preferences
    """

    __tablename__ = "user_profiles"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Text, nullable=False, unique=True, index=True)
    current_job_title = Column(Text, nullable=True)
    desired_job_title = Column(Text, nullable=True)
    skills = Column(JSONB, nullable=True)
    experience_level = Column(Text, nullable=True)
    preferred_locations = Column(JSONB, nullable=True)
    preferred_employment_types = Column(JSONB, nullable=True)
    salary_expectation = Column(JSONB, nullable=True)
    excluded_companies = Column(JSONB, nullable=True)
    preferences = Column(JSONB, nullable=True)
    last_active = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
