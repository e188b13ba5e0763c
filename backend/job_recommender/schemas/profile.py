from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Any, Optional


class UserProfileRecord(BaseModel):
    user_id: str
    current_job_title: Optional[str] = None
    desired_job_title: Optional[str] = None
    skills: list[str] = []
    experience_level: Optional[str] = None
    preferred_locations: Optional[list[str]] = None
    preferred_employment_types: Optional[list[str]] = None
    salary_expectation: Optional[dict[str, Any]] = None
    excluded_companies: Optional[list[str]] = None
    preferences: Optional[dict[str, Any]] = None
    updated_at: Optional[datetime] = None

    @field_validator("skills", mode="before")
    @classmethod
    def _skills_default(cls, value: Any) -> Any:
        return value or []

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    current_job_title: Optional[str] = Field(None, alias="currentJobTitle")
    desired_job_title: Optional[str] = Field(None, alias="desiredJobTitle")
    skills: Optional[list[str]] = Field(None, max_length=50)
    experience_level: Optional[str] = Field(None, alias="experienceLevel")
    preferred_locations: Optional[list[str]] = Field(None, alias="preferredLocations")
    preferred_employment_types: Optional[list[str]] = Field(None, alias="preferredEmploymentTypes")
    salary_expectation: Optional[dict[str, Any]] = Field(None, alias="salaryExpectation")
    excluded_companies: Optional[list[str]] = Field(None, alias="excludedCompanies")
    preferences: Optional[dict[str, Any]] = None

    class Config:
        populate_by_name = True


class EngagementMetrics(BaseModel):
    """Signals mined from the last 90 days of a user's activity."""

    top_skills: list[str] = []
    preferred_companies: list[str] = []
    avg_interaction_time: float = 0.0


class ActivitySummary(BaseModel):
    total_searches: int = 0
    total_views: int = 0
    total_saves: int = 0
    total_applications: int = 0
    average_time_spent: float = 0.0


class ProfileOverview(BaseModel):
    profile: Optional[UserProfileRecord] = None
    engagement_score: int
    suggested_filters: dict[str, list[str]]


class ProfileOverviewResponse(BaseModel):
    success: bool = True
    data: ProfileOverview
