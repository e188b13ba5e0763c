from pydantic import BaseModel, Field, field_validator
from datetime import date
from typing import Any, Optional


class RecommendationFilters(BaseModel):
    locations: Optional[list[str]] = None
    employment_types: Optional[list[str]] = Field(None, alias="employmentTypes")
    posted_within_days: Optional[int] = Field(None, alias="postedWithinDays", ge=1)
    exclude_companies: Optional[list[str]] = Field(None, alias="excludeCompanies")

    class Config:
        populate_by_name = True


class RecommendationRequest(BaseModel):
    job_title: str = Field(..., alias="jobTitle", min_length=1, max_length=500)
    skills: list[str] = Field(..., min_length=1, max_length=50)
    filters: Optional[RecommendationFilters] = None
    exclude_viewed: bool = Field(True, alias="excludeViewed")
    page: int = Field(1, ge=1)
    page_size: int = Field(20, alias="pageSize", ge=1, le=100)

    class Config:
        populate_by_name = True


class JobPostFields(BaseModel):
    id: str
    title: Optional[str] = None
    company_name: Optional[str] = None
    company_logo: Optional[str] = None
    location: Optional[str] = None
    salary_info: Optional[Any] = None
    posted_at: Optional[date] = None
    expire_at: Optional[date] = None
    description_text: Optional[str] = None
    description_html: Optional[str] = None
    apply_url: Optional[str] = None
    job_function: Optional[str] = None
    employment_type: Optional[str] = None
    link: Optional[str] = None
    source: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        # asyncpg hands back uuid.UUID for uuid columns
        return str(value)


class ScoredJobRow(JobPostFields):
    """One candidate row from the hybrid search query, with component scores."""

    fts_score: float = 0.0
    title_similarity: float = 0.0
    exact_skill_matches: int = 0
    fuzzy_skill_matches: int = 0
    user_saved_count: int = 0
    user_interaction_count: int = 0
    relevance_score: float = 0.0


class ScoredJobPost(JobPostFields):
    relevance_score: float
    match_reasons: list[str]
    skill_match_count: int
    title_similarity: float
    personalization_boost: float = 0.0
    # Only populated when the caller is authenticated
    is_viewed: Optional[bool] = None
    is_saved: Optional[bool] = None
    interaction_count: Optional[int] = None


class SearchMetadata(BaseModel):
    user_job_title: str
    user_skills: list[str]
    algorithm_version: str
    filters_applied: Optional[RecommendationFilters] = None
    execution_time_ms: int
    cache_hit: bool
    personalization_factors: Optional[list[str]] = None


class PaginationMetadata(BaseModel):
    current_page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


class RecommendationData(BaseModel):
    recommendations: list[ScoredJobPost]
    total_count: int
    new_jobs_count: Optional[int] = None
    search_metadata: SearchMetadata
    pagination: PaginationMetadata
    personalization_applied: bool


class RecommendationResponse(BaseModel):
    success: bool = True
    data: RecommendationData
