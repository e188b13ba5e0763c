"""
Job Recommendation Service - request orchestration

Pipeline for one recommendation request:

    validate → cache lookup (anonymous or excludeViewed=false only)
             → merge stored profile into filters
             → hybrid search (max(100, page_size * 5) candidates)
             → interaction state → enrichment → personalization boost
             → quality filters → sort → cache write
             → new-jobs count → detached analytics/profile update
             → paginate

Best-effort steps (new-jobs count, personalization, analytics, profile
update) degrade explicitly and never fail the request. Validation happens
before any I/O; datastore errors on the search path propagate.
"""

import json
import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from job_recommender.config import Settings, get_settings
from job_recommender.errors import RecommendationValidationError
from job_recommender.middleware.metrics import (
    record_best_effort_failure,
    record_recommendation_latency,
)
from job_recommender.schemas import (
    CACHE_INVALIDATING_INTERACTIONS,
    InteractionState,
    PaginationMetadata,
    ProfileOverview,
    ProfileUpdate,
    RecommendationFilters,
    ScoredJobPost,
    ScoredJobRow,
    SearchMetadata,
    UserProfileRecord,
)
from job_recommender.services.background import DetachedTaskRunner
from job_recommender.services.cache import ResultCache
from job_recommender.services.personalization import PersonalizationService
from job_recommender.services.text import normalize_text

logger = logging.getLogger(__name__)

MAX_SKILLS = 50
MAX_PAGE_SIZE = 100
MIN_FETCH_LIMIT = 100
FETCH_MULTIPLIER = 5
MAX_PROFILE_SKILLS = 50

MIN_RELEVANCE_SCORE = 5
MAX_JOBS_PER_COMPANY = 3
RECENT_DAYS = 7

# First match wins
SENIORITY_LEVELS = [
    "intern",
    "junior",
    "mid-level",
    "senior",
    "lead",
    "principal",
    "staff",
    "architect",
    "director",
    "vp",
    "chief",
]


@dataclass
class RecommendationQuery:
    job_title: str
    skills: List[str]
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    filters: Optional[RecommendationFilters] = None
    exclude_viewed: bool = True
    page: int = 1
    page_size: int = 20


@dataclass
class RecommendationResult:
    recommendations: List[ScoredJobPost]
    metadata: SearchMetadata
    new_jobs_count: int
    total_count: int
    new_jobs_count_degraded: bool = False
    personalization_factors: List[str] = field(default_factory=list)

    @property
    def personalization_applied(self) -> bool:
        return bool(self.personalization_factors)


# ==================== Pure helpers ====================

def validate_query(query: RecommendationQuery) -> None:
    """Raise RecommendationValidationError on the first violated constraint."""
    if not isinstance(query.job_title, str) or not query.job_title.strip():
        raise RecommendationValidationError("Job title is required")

    if not query.skills:
        raise RecommendationValidationError("At least one skill is required")

    if len(query.skills) > MAX_SKILLS:
        raise RecommendationValidationError(f"Maximum {MAX_SKILLS} skills allowed")

    for skill in query.skills:
        if not isinstance(skill, str) or not skill.strip():
            raise RecommendationValidationError("All skills must be non-empty strings")

    if query.page < 1 or query.page_size < 1 or query.page_size > MAX_PAGE_SIZE:
        raise RecommendationValidationError(
            f"Invalid pagination parameters. page >= 1, pageSize 1-{MAX_PAGE_SIZE}"
        )


def build_cache_key(query: RecommendationQuery) -> str:
    """
    Deterministic key for a query.

    >>> build_cache_key(RecommendationQuery(job_title="Go Dev!", skills=["k8s", "go"]))
    'anon:title:go dev:skills:go,k8s:exclude-viewed'
    """
    parts = [
        f"user:{query.user_id}" if query.user_id else "anon",
        f"title:{normalize_text(query.job_title)}",
        f"skills:{','.join(sorted(query.skills))}",
    ]
    if query.filters is not None:
        filters_json = json.dumps(
            query.filters.model_dump(by_alias=True, exclude_none=True),
            sort_keys=True,
            separators=(",", ":"),
        )
        parts.append(f"filters:{filters_json}")
    if query.exclude_viewed:
        parts.append("exclude-viewed")
    return ":".join(part for part in parts if part)


def merge_filters_with_profile(
    filters: Optional[RecommendationFilters],
    profile: UserProfileRecord,
) -> RecommendationFilters:
    """
    Fill request filters from the stored profile.

    Locations and employment types from the request win when present.
    Excluded companies are the union of both, request first.
    """
    base = filters or RecommendationFilters()
    excluded = list(dict.fromkeys([*(base.exclude_companies or []), *(profile.excluded_companies or [])]))
    return base.model_copy(
        update={
            "locations": base.locations or profile.preferred_locations,
            "employment_types": base.employment_types or profile.preferred_employment_types,
            "exclude_companies": excluded or None,
        }
    )


def extract_seniority_level(title: str) -> Optional[str]:
    lowered = title.lower()
    for level in SENIORITY_LEVELS:
        if level in lowered:
            return level
    return None


def enrich_job(
    row: ScoredJobRow,
    job_title: str,
    skills: List[str],
    interactions: Optional[Dict[str, InteractionState]] = None,
    today: Optional[date] = None,
) -> ScoredJobPost:
    """
    Turn a raw search row into a ScoredJobPost with match reasons.

    Interaction fields are only set when an interaction map is given
    (authenticated callers).
    """
    today = today or date.today()
    reasons: List[str] = []
    description = (row.description_text or "").lower()
    title = (row.title or "").lower()

    if row.title_similarity > 0.5:
        reasons.append("Strong title match")
    elif row.title_similarity > 0.3:
        reasons.append("Similar job title")

    matched = []
    for skill in skills:
        needle = skill.strip().lower()
        if needle and (needle in description or needle in title):
            matched.append(skill)

    if len(matched) >= 3:
        reasons.append(f"{len(matched)} of your skills match")
    elif len(matched) == 2:
        reasons.append(f"2 skills match: {', '.join(matched)}")
    elif len(matched) == 1:
        reasons.append(f"Matches skill: {matched[0]}")

    seniority = extract_seniority_level(job_title)
    if seniority and seniority in title:
        reasons.append("Matching seniority level")

    if row.posted_at is not None and (today - row.posted_at).days <= RECENT_DAYS:
        reasons.append("Recently posted")

    job = ScoredJobPost(
        **row.model_dump(include=set(ScoredJobPost.model_fields) - {"relevance_score", "title_similarity"}),
        relevance_score=round(row.relevance_score, 2),
        match_reasons=reasons or ["General match"],
        skill_match_count=len(matched),
        title_similarity=row.title_similarity,
    )

    if interactions is not None:
        state = interactions.get(row.id, InteractionState())
        job.is_viewed = state.is_viewed
        job.is_saved = state.is_saved
        job.interaction_count = state.count

    return job


def apply_quality_filters(jobs: List[ScoredJobPost]) -> List[ScoredJobPost]:
    """Dedup by (company, title), drop scores below the floor, cap per company."""
    seen = set()
    unique = []
    for job in jobs:
        key = ((job.company_name or "").lower(), (job.title or "").lower())
        if key not in seen:
            seen.add(key)
            unique.append(job)

    relevant = [job for job in unique if job.relevance_score >= MIN_RELEVANCE_SCORE]

    per_company: Dict[str, int] = {}
    diverse = []
    for job in relevant:
        company = (job.company_name or "").lower() or "unknown"
        count = per_company.get(company, 0)
        if count < MAX_JOBS_PER_COMPANY:
            diverse.append(job)
            per_company[company] = count + 1

    return diverse


def paginate(items: List[Any], page: int, page_size: int) -> List[Any]:
    start = (page - 1) * page_size
    return items[start:start + page_size]


def build_pagination(total_count: int, page: int, page_size: int) -> PaginationMetadata:
    total_pages = math.ceil(total_count / page_size) if page_size else 0
    return PaginationMetadata(
        current_page=page,
        page_size=page_size,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_previous=page > 1,
    )


def _is_valid_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


# ==================== Service ====================

class JobRecommendationService:
    """
    Orchestrates search, caching, personalization and interaction tracking.

    Attributes:
        repository: JobRecommendationRepository
        cache: ResultCache owned by the application lifespan
        personalization: PersonalizationService
        task_runner: DetachedTaskRunner for fire-and-forget side effects
    """

    def __init__(
        self,
        repository,
        cache: ResultCache,
        personalization: Optional[PersonalizationService] = None,
        task_runner: Optional[DetachedTaskRunner] = None,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.cache = cache
        self.personalization = personalization or PersonalizationService(repository)
        self.task_runner = task_runner or DetachedTaskRunner()
        self.settings = settings or get_settings()

    async def generate_recommendations(self, query: RecommendationQuery) -> RecommendationResult:
        start_time = time.perf_counter()
        validate_query(query)

        cache_key = build_cache_key(query)
        cacheable = not query.user_id or not query.exclude_viewed

        if cacheable:
            cached = await self._read_cache(cache_key)
            if cached is not None:
                return self._finish(
                    query,
                    ranked=cached,
                    filters=query.filters,
                    new_jobs_count=len(cached),
                    cache_hit=True,
                    factors=[],
                    start_time=start_time,
                )

        factors: List[str] = []
        filters = query.filters
        if query.user_id:
            profile = await self.repository.get_user_profile(query.user_id)
            if profile is not None:
                filters = merge_filters_with_profile(filters, profile)
                factors.append("user_profile")

        rows = await self.repository.find_relevant_jobs(
            query.job_title,
            query.skills,
            user_id=query.user_id,
            filters=filters,
            exclude_viewed=query.exclude_viewed,
            limit=max(MIN_FETCH_LIMIT, query.page_size * FETCH_MULTIPLIER),
        )

        interactions = None
        if query.user_id:
            interactions = {}
            if rows:
                interactions = await self.repository.get_user_job_interactions(
                    query.user_id, [row.id for row in rows]
                )
                factors.append("interaction_history")

        jobs = [enrich_job(row, query.job_title, query.skills, interactions) for row in rows]

        if query.user_id and jobs:
            boost = await self.personalization.apply_personalization_boost(jobs, query.user_id)
            jobs = boost.jobs
            if boost.applied:
                factors.append("engagement_patterns")

        jobs = apply_quality_filters(jobs)
        jobs.sort(key=lambda job: job.relevance_score, reverse=True)

        if cacheable:
            await self.cache.set(
                cache_key,
                [job.model_dump(mode="json") for job in jobs],
                ttl=self.settings.cache_ttl_seconds,
            )

        new_jobs_count = len(jobs)
        degraded = False
        if query.user_id:
            try:
                new_jobs_count = await self.repository.get_new_jobs_count(
                    query.job_title, query.skills, query.user_id, filters
                )
            except Exception as e:
                degraded = True
                record_best_effort_failure("new_jobs_count")
                logger.warning(f"New jobs count unavailable, using result length: {e}")

        if query.session_id:
            self.task_runner.spawn(
                self.repository.save_search_query(
                    query.user_id,
                    query.session_id,
                    query.job_title,
                    query.skills,
                    filters,
                    len(jobs),
                    min(len(jobs), query.page_size),
                ),
                name="search_analytics",
            )

        if query.user_id:
            self.task_runner.spawn(
                self.update_user_profile(query.user_id, query.job_title, query.skills),
                name="profile_update",
            )

        return self._finish(
            query,
            ranked=jobs,
            filters=filters,
            new_jobs_count=new_jobs_count,
            cache_hit=False,
            factors=factors,
            start_time=start_time,
            degraded=degraded,
        )

    async def _read_cache(self, key: str) -> Optional[List[ScoredJobPost]]:
        cached = await self.cache.get(key)
        if cached is None:
            return None
        try:
            return [ScoredJobPost.model_validate(item) for item in cached]
        except ValidationError as e:
            logger.warning(f"Discarding malformed cache entry {key}: {e}")
            await self.cache.delete(key)
            return None

    def _finish(
        self,
        query: RecommendationQuery,
        ranked: List[ScoredJobPost],
        filters: Optional[RecommendationFilters],
        new_jobs_count: int,
        cache_hit: bool,
        factors: List[str],
        start_time: float,
        degraded: bool = False,
    ) -> RecommendationResult:
        duration = time.perf_counter() - start_time
        record_recommendation_latency(cache_hit, duration)

        metadata = SearchMetadata(
            user_job_title=query.job_title,
            user_skills=query.skills,
            algorithm_version=self.settings.algorithm_version,
            filters_applied=filters,
            execution_time_ms=int(duration * 1000),
            cache_hit=cache_hit,
            personalization_factors=factors or None,
        )

        logger.debug(
            f"Recommendations for '{query.job_title}': {len(ranked)} ranked, "
            f"cache_hit={cache_hit}, {metadata.execution_time_ms}ms"
        )

        return RecommendationResult(
            recommendations=paginate(ranked, query.page, query.page_size),
            metadata=metadata,
            new_jobs_count=new_jobs_count,
            total_count=len(ranked),
            new_jobs_count_degraded=degraded,
            personalization_factors=factors,
        )

    async def update_user_profile(self, user_id: str, job_title: str, skills: List[str]) -> None:
        """
        Fold a search into the profile: merged skills (latest 50) and desired title.

        A skill searched again moves to the end, so it survives the cap.
        """
        profile = await self.repository.get_user_profile(user_id)

        merged = list(profile.skills) if profile else []
        for skill in skills:
            if skill in merged:
                merged.remove(skill)
            merged.append(skill)

        await self.repository.upsert_user_profile(
            user_id,
            desired_job_title=job_title,
            skills=merged[-MAX_PROFILE_SKILLS:],
        )

    async def track_job_interaction(
        self,
        user_id: str,
        job_id: str,
        interaction_type: str,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not _is_valid_uuid(job_id):
            raise RecommendationValidationError(f"Invalid job id: {job_id}")

        await self.repository.track_interaction(
            user_id, job_id, interaction_type, session_id=session_id, metadata=metadata
        )

        if interaction_type in CACHE_INVALIDATING_INTERACTIONS:
            removed = await self.cache.invalidate_pattern(f"user:{user_id}:*")
            logger.debug(f"Invalidated {removed} cached result sets for user {user_id}")

    async def submit_feedback(
        self,
        user_id: str,
        job_id: str,
        feedback_type: str,
        reason: Optional[str] = None,
    ) -> None:
        await self.track_job_interaction(
            user_id, job_id, f"feedback_{feedback_type}", metadata={"reason": reason}
        )

    async def update_profile(self, user_id: str, update: ProfileUpdate) -> Optional[UserProfileRecord]:
        """Explicit profile edit; absent fields keep their stored values."""
        fields = update.model_dump(exclude_none=True)
        if "skills" in fields:
            fields["skills"] = list(dict.fromkeys(fields["skills"]))[-MAX_PROFILE_SKILLS:]

        await self.repository.upsert_user_profile(user_id, **fields)
        await self.cache.invalidate_pattern(f"user:{user_id}:*")
        return await self.repository.get_user_profile(user_id)

    async def get_profile_overview(self, user_id: str) -> ProfileOverview:
        profile = await self.repository.get_user_profile(user_id)
        summary = await self.repository.get_user_activity_summary(user_id)
        suggestions = await self.personalization.suggest_filters_for_user(user_id)

        return ProfileOverview(
            profile=profile,
            engagement_score=self.personalization.calculate_engagement_score(summary),
            suggested_filters=suggestions,
        )
