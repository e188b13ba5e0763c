"""
Job Search Repository - Hybrid multi-signal search over job_posts

All datastore access for the recommendation engine lives here. Every
operation opens its own session from the injected session factory, so
detached background work never shares a session with a request.

Search Signals (per candidate):
    fts_score            ts_rank_cd(title) * 4.0 + ts_rank_cd(description) * 2.0
    title_similarity     pg_trgm similarity of lowercased titles, 0-1
    exact_skill_matches  skills found by (escaped) regex in description/title/function
    fuzzy_skill_matches  skills found by plain substring in description
    user_saved_count     times this user saved the posting (0 when anonymous)

Composite Relevance (points):
    min(fts*30, 30) + similarity*25 + min(exact*10, 30) + min(fuzzy*2, 10)
    + recency (5 / 3 / 1 for <=7 / <=14 / <=30 days) + 5 if previously saved

Rows are validated into typed records at this boundary. Datastore errors
propagate to the caller; only analytics writes are best-effort.
"""

import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, null, select, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from job_recommender.errors import JobNotFoundError
from job_recommender.models import JobInteraction, SearchQuery, UserProfile
from job_recommender.schemas import (
    ActivitySummary,
    EngagementMetrics,
    InteractionState,
    RecommendationFilters,
    ScoredJobRow,
    UserProfileRecord,
)
from job_recommender.services.text import build_skill_pattern, escape_pattern, normalize_text

logger = logging.getLogger(__name__)

HISTORY_WINDOW_DAYS = 90
TITLE_SIMILARITY_THRESHOLD = 0.15
FTS_SCORE_THRESHOLD = 0.001

# Interactions that hide a posting from "exclude viewed" searches
EXCLUDED_INTERACTION_TYPES = ["viewed", "dismissed", "clicked_apply"]
VIEWED_INTERACTION_TYPES = ["viewed", "clicked_apply"]

PROFILE_FIELDS = (
    "current_job_title",
    "desired_job_title",
    "skills",
    "experience_level",
    "preferred_locations",
    "preferred_employment_types",
    "salary_expectation",
    "excluded_companies",
    "preferences",
)

JOB_COLUMNS = """
    jp.id, jp.title, jp.company_name, jp.company_logo, jp.location,
    jp.salary_info, jp.posted_at, jp.expire_at, jp.description_text,
    jp.description_html, jp.apply_url, jp.job_function, jp.employment_type,
    jp.link, jp.source
"""

NOT_EXPIRED = "(jp.expire_at IS NULL OR jp.expire_at > CURRENT_DATE)"
HISTORY_WINDOW = "CURRENT_DATE - make_interval(days => :history_days)"


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_search_terms(job_title: str, skills: List[str]) -> Tuple[str, List[str], str]:
    """
    Normalize inputs into (normalized_title, normalized_skills, search_terms).

    search_terms is a disjunctive websearch query: "title OR skill OR skill".
    """
    normalized_title = normalize_text(job_title)
    normalized_skills = [s for s in (normalize_text(skill) for skill in skills) if s]
    search_terms = " OR ".join(t for t in [normalized_title, *normalized_skills] if t)
    return normalized_title, normalized_skills, search_terms


def build_filter_clauses(
    filters: Optional[RecommendationFilters],
) -> Tuple[List[str], Dict[str, Any]]:
    """Translate optional filters into ANDed SQL clauses and their bind params."""
    clauses: List[str] = []
    params: Dict[str, Any] = {}

    if filters is None:
        return clauses, params

    if filters.locations:
        location_clauses = []
        for i, location in enumerate(filters.locations):
            name = f"location_{i}"
            params[name] = f"%{_escape_like(location.lower())}%"
            location_clauses.append(f"LOWER(jp.location) LIKE :{name}")
        clauses.append("(" + " OR ".join(location_clauses) + ")")

    if filters.employment_types:
        params["employment_types"] = list(filters.employment_types)
        clauses.append("jp.employment_type = ANY(CAST(:employment_types AS text[]))")

    if filters.posted_within_days:
        params["posted_within_days"] = filters.posted_within_days
        clauses.append("jp.posted_at >= CURRENT_DATE - make_interval(days => :posted_within_days)")

    if filters.exclude_companies:
        params["exclude_companies"] = list(filters.exclude_companies)
        clauses.append(
            "(jp.company_name IS NULL OR jp.company_name <> ALL(CAST(:exclude_companies AS text[])))"
        )

    return clauses, params


def _match_predicate(skill_pattern: str) -> str:
    skill_clause = (
        "LOWER(COALESCE(jp.description_text, '')) ~ :skill_pattern"
        if skill_pattern
        else "FALSE"
    )
    return f"""(
        jp.fts @@ websearch_to_tsquery('english', :search_terms)
        OR similarity(LOWER(COALESCE(jp.title, '')), :normalized_title) > {TITLE_SIMILARITY_THRESHOLD}
        OR {skill_clause}
    )"""


def build_search_query(
    job_title: str,
    skills: List[str],
    user_id: Optional[str] = None,
    filters: Optional[RecommendationFilters] = None,
    exclude_viewed: bool = True,
    limit: int = 50,
) -> Tuple[str, Dict[str, Any]]:
    """
    Build the hybrid search SQL and its bind parameters.

    Returns:
        Tuple of (sql, params)
    """
    normalized_title, normalized_skills, search_terms = build_search_terms(job_title, skills)
    skill_pattern = build_skill_pattern(normalized_skills)

    params: Dict[str, Any] = {
        "normalized_title": normalized_title,
        "search_terms": search_terms,
        "skills": normalized_skills,
        "skill_patterns": [escape_pattern(skill) for skill in normalized_skills],
        "limit": limit,
    }
    if skill_pattern:
        params["skill_pattern"] = skill_pattern

    if user_id:
        params["user_id"] = user_id
        user_columns = """
            COALESCE((
                SELECT COUNT(*)::int FROM job_interactions ji
                WHERE ji.job_id = jp.id AND ji.user_id = :user_id
                  AND ji.interaction_type = 'saved'
            ), 0) AS user_saved_count,
            COALESCE((
                SELECT COUNT(*)::int FROM job_interactions ji
                WHERE ji.job_id = jp.id AND ji.user_id = :user_id
            ), 0) AS user_interaction_count
        """
    else:
        user_columns = "0 AS user_saved_count, 0 AS user_interaction_count"

    exclusion = ""
    if user_id and exclude_viewed:
        params["history_days"] = HISTORY_WINDOW_DAYS
        params["excluded_types"] = EXCLUDED_INTERACTION_TYPES
        exclusion = f"""
          AND jp.id NOT IN (
              SELECT ji.job_id FROM job_interactions ji
              WHERE ji.user_id = :user_id
                AND ji.interaction_type = ANY(CAST(:excluded_types AS text[]))
                AND ji.created_at >= {HISTORY_WINDOW}
          )
        """

    filter_clauses, filter_params = build_filter_clauses(filters)
    params.update(filter_params)
    filter_sql = "".join(f"\n          AND {clause}" for clause in filter_clauses)

    sql = f"""
    WITH candidates AS (
        SELECT
            {JOB_COLUMNS},
            (
                ts_rank_cd(jp.fts_title, websearch_to_tsquery('english', :search_terms)) * 4.0 +
                ts_rank_cd(jp.fts_description_text, websearch_to_tsquery('english', :search_terms)) * 2.0
            ) AS fts_score,
            similarity(LOWER(COALESCE(jp.title, '')), :normalized_title) AS title_similarity,
            (
                SELECT COUNT(*)::int FROM unnest(CAST(:skill_patterns AS text[])) AS skill
                WHERE LOWER(COALESCE(jp.description_text, '')) ~ skill
                   OR LOWER(COALESCE(jp.title, '')) ~ skill
                   OR LOWER(COALESCE(jp.job_function, '')) ~ skill
            ) AS exact_skill_matches,
            (
                SELECT COUNT(DISTINCT skill)::int FROM unnest(CAST(:skills AS text[])) AS skill
                WHERE strpos(LOWER(COALESCE(jp.description_text, '')), skill) > 0
            ) AS fuzzy_skill_matches,
            {user_columns}
        FROM job_posts jp
        WHERE {NOT_EXPIRED}{exclusion}
          AND {_match_predicate(skill_pattern)}{filter_sql}
    )
    SELECT
        *,
        (
            LEAST(fts_score * 30, 30)
            + title_similarity * 25
            + LEAST(exact_skill_matches * 10, 30)
            + LEAST(fuzzy_skill_matches * 2, 10)
            + CASE
                WHEN posted_at >= CURRENT_DATE - 7 THEN 5
                WHEN posted_at >= CURRENT_DATE - 14 THEN 3
                WHEN posted_at >= CURRENT_DATE - 30 THEN 1
                ELSE 0
              END
            + CASE WHEN user_saved_count > 0 THEN 5 ELSE 0 END
        ) AS relevance_score
    FROM candidates
    WHERE fts_score > {FTS_SCORE_THRESHOLD}
       OR title_similarity > {TITLE_SIMILARITY_THRESHOLD}
       OR exact_skill_matches > 0
    ORDER BY relevance_score DESC, posted_at DESC NULLS LAST
    LIMIT :limit
    """
    return sql, params


def build_new_jobs_count_query(
    job_title: str,
    skills: List[str],
    user_id: str,
    filters: Optional[RecommendationFilters] = None,
) -> Tuple[str, Dict[str, Any]]:
    """Count matching postings the user has not touched in the history window."""
    normalized_title, normalized_skills, search_terms = build_search_terms(job_title, skills)
    skill_pattern = build_skill_pattern(normalized_skills)

    params: Dict[str, Any] = {
        "normalized_title": normalized_title,
        "search_terms": search_terms,
        "user_id": user_id,
        "history_days": HISTORY_WINDOW_DAYS,
    }
    if skill_pattern:
        params["skill_pattern"] = skill_pattern

    filter_clauses, filter_params = build_filter_clauses(filters)
    params.update(filter_params)
    filter_sql = "".join(f"\n          AND {clause}" for clause in filter_clauses)

    sql = f"""
    SELECT COUNT(DISTINCT jp.id)
    FROM job_posts jp
    WHERE {NOT_EXPIRED}
      AND jp.id NOT IN (
          SELECT ji.job_id FROM job_interactions ji
          WHERE ji.user_id = :user_id
            AND ji.created_at >= {HISTORY_WINDOW}
      )
      AND {_match_predicate(skill_pattern)}{filter_sql}
    """
    return sql, params


ENGAGEMENT_METRICS_SQL = f"""
WITH user_searches AS (
    SELECT jsonb_array_elements_text(sq.skills) AS skill
    FROM search_queries sq
    WHERE sq.user_id = :user_id
      AND sq.created_at >= {HISTORY_WINDOW}
),
top_skills AS (
    SELECT skill, COUNT(*) AS skill_count
    FROM user_searches
    GROUP BY skill
    ORDER BY skill_count DESC, skill
    LIMIT 10
),
viewed_companies AS (
    SELECT jp.company_name, COUNT(*) AS view_count
    FROM job_interactions ji
    JOIN job_posts jp ON ji.job_id = jp.id
    WHERE ji.user_id = :user_id
      AND ji.interaction_type IN ('viewed', 'saved')
      AND ji.created_at >= {HISTORY_WINDOW}
      AND jp.company_name IS NOT NULL
    GROUP BY jp.company_name
    ORDER BY view_count DESC, jp.company_name
    LIMIT 10
)
SELECT
    COALESCE(
        (SELECT json_agg(skill ORDER BY skill_count DESC, skill) FROM top_skills)::text,
        '[]'
    ) AS top_skills,
    COALESCE(
        (SELECT json_agg(company_name ORDER BY view_count DESC, company_name) FROM viewed_companies)::text,
        '[]'
    ) AS preferred_companies,
    COALESCE(
        (
            SELECT AVG((ji.metadata->>'timeSpent')::float8)
            FROM job_interactions ji
            WHERE ji.user_id = :user_id
              AND ji.metadata->>'timeSpent' IS NOT NULL
              AND ji.created_at >= {HISTORY_WINDOW}
        ),
        0
    ) AS avg_time
"""

ACTIVITY_SUMMARY_SQL = f"""
SELECT
    (
        SELECT COUNT(*) FROM search_queries sq
        WHERE sq.user_id = :user_id AND sq.created_at >= {HISTORY_WINDOW}
    ) AS total_searches,
    COUNT(*) FILTER (WHERE ji.interaction_type = 'viewed') AS total_views,
    COUNT(*) FILTER (WHERE ji.interaction_type = 'saved') AS total_saves,
    COUNT(*) FILTER (WHERE ji.interaction_type = 'clicked_apply') AS total_applications,
    COALESCE(AVG((ji.metadata->>'timeSpent')::float8), 0) AS average_time_spent
FROM job_interactions ji
WHERE ji.user_id = :user_id
  AND ji.created_at >= {HISTORY_WINDOW}
"""


class JobRecommendationRepository:
    """
    Data access for recommendations, interactions and profiles.

    Attributes:
        session_factory: async_sessionmaker producing AsyncSession instances
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_relevant_jobs(
        self,
        job_title: str,
        skills: List[str],
        user_id: Optional[str] = None,
        filters: Optional[RecommendationFilters] = None,
        exclude_viewed: bool = True,
        limit: int = 50,
    ) -> List[ScoredJobRow]:
        """
        Hybrid search for postings relevant to a title and skill set.

        Args:
            job_title: Target job title
            skills: Candidate skills (raw, normalized here)
            user_id: Caller identity; enables saved/interaction counts
            filters: Optional location/type/recency/company narrowing
            exclude_viewed: Hide postings viewed, dismissed or applied to
                in the last 90 days (only when user_id is given)
            limit: Maximum rows

        Returns:
            Rows ordered by relevance_score desc, then posted_at desc
        """
        sql, params = build_search_query(job_title, skills, user_id, filters, exclude_viewed, limit)

        async with self.session_factory() as session:
            result = await session.execute(text(sql), params)
            rows = result.mappings().all()

        return [ScoredJobRow.model_validate(dict(row)) for row in rows]

    async def get_new_jobs_count(
        self,
        job_title: str,
        skills: List[str],
        user_id: str,
        filters: Optional[RecommendationFilters] = None,
    ) -> int:
        sql, params = build_new_jobs_count_query(job_title, skills, user_id, filters)

        async with self.session_factory() as session:
            result = await session.execute(text(sql), params)
            return int(result.scalar() or 0)

    async def track_interaction(
        self,
        user_id: str,
        job_id: str,
        interaction_type: str,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append one interaction row. Raises JobNotFoundError for unknown postings."""
        async with self.session_factory() as session:
            session.add(
                JobInteraction(
                    user_id=user_id,
                    job_id=job_id,
                    interaction_type=interaction_type,
                    session_id=session_id,
                    metadata_=metadata,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise JobNotFoundError(f"Job {job_id} not found")

    async def get_user_job_interactions(
        self,
        user_id: str,
        job_ids: List[str],
    ) -> Dict[str, InteractionState]:
        """Aggregate interaction state per job id for one user (single query)."""
        if not job_ids:
            return {}

        query = (
            select(
                JobInteraction.job_id,
                func.bool_or(JobInteraction.interaction_type.in_(VIEWED_INTERACTION_TYPES)).label("is_viewed"),
                func.bool_or(JobInteraction.interaction_type == "saved").label("is_saved"),
                func.count(JobInteraction.id).label("interaction_count"),
            )
            .where(JobInteraction.user_id == user_id, JobInteraction.job_id.in_(job_ids))
            .group_by(JobInteraction.job_id)
        )

        async with self.session_factory() as session:
            result = await session.execute(query)
            rows = result.all()

        return {
            str(row.job_id): InteractionState(
                is_viewed=bool(row.is_viewed),
                is_saved=bool(row.is_saved),
                count=int(row.interaction_count),
            )
            for row in rows
        }

    async def save_search_query(
        self,
        user_id: Optional[str],
        session_id: str,
        job_title: str,
        skills: List[str],
        filters: Optional[RecommendationFilters],
        results_count: int,
        results_shown: int,
    ) -> Optional[str]:
        """
        Record a search for analytics. Best-effort: failures are logged and
        None is returned.
        """
        search = SearchQuery(
            id=str(uuid.uuid4()),
            user_id=user_id,
            session_id=session_id,
            job_title=job_title,
            skills=list(skills),
            filters=filters.model_dump(by_alias=True, exclude_none=True) if filters else None,
            results_count=results_count,
            results_shown=results_shown,
        )
        try:
            async with self.session_factory() as session:
                session.add(search)
                await session.commit()
            return search.id
        except Exception as e:
            logger.warning(f"Failed to save search query: {e}")
            return None

    async def get_user_profile(self, user_id: str) -> Optional[UserProfileRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserProfile).where(UserProfile.user_id == user_id).limit(1)
            )
            profile = result.scalar_one_or_none()

        if profile is None:
            return None
        return UserProfileRecord.model_validate(profile)

    async def upsert_user_profile(self, user_id: str, **fields: Any) -> None:
        """
        Insert or merge a profile. A field that is absent or None keeps its
        stored value (COALESCE(new, old)).
        """
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise TypeError(f"Unknown profile fields: {sorted(unknown)}")

        # SQL NULL, not JSON null, so COALESCE falls through to the stored value
        values = {
            name: fields[name] if fields.get(name) is not None else null()
            for name in PROFILE_FIELDS
        }

        table = UserProfile.__table__
        stmt = insert(table).values(id=str(uuid.uuid4()), user_id=user_id, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id],
            set_={
                **{name: func.coalesce(stmt.excluded[name], table.c[name]) for name in PROFILE_FIELDS},
                "updated_at": func.now(),
                "last_active": func.now(),
            },
        )

        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def get_user_engagement_metrics(self, user_id: str) -> EngagementMetrics:
        """
        Top searched skills, most viewed/saved companies and average time
        spent over the last 90 days.
        """
        async with self.session_factory() as session:
            result = await session.execute(
                text(ENGAGEMENT_METRICS_SQL),
                {"user_id": user_id, "history_days": HISTORY_WINDOW_DAYS},
            )
            row = result.mappings().first()

        if row is None:
            return EngagementMetrics()

        return EngagementMetrics(
            top_skills=json.loads(row["top_skills"] or "[]"),
            preferred_companies=json.loads(row["preferred_companies"] or "[]"),
            avg_interaction_time=float(row["avg_time"] or 0),
        )

    async def get_user_activity_summary(self, user_id: str) -> ActivitySummary:
        async with self.session_factory() as session:
            result = await session.execute(
                text(ACTIVITY_SUMMARY_SQL),
                {"user_id": user_id, "history_days": HISTORY_WINDOW_DAYS},
            )
            row = result.mappings().first()

        if row is None:
            return ActivitySummary()
        return ActivitySummary.model_validate(dict(row))
