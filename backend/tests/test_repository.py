"""
Tests for the Job Search Repository

Tests cover:
- Search term construction and filter clause generation
- Hybrid search SQL shape (exclusion, user signals, final filter, ordering)
- Row validation into typed records
- Interaction insert and unknown-job mapping
- Interaction state aggregation
- Best-effort search analytics
- Profile upsert merge semantics
- Engagement metrics and activity summary decoding
"""

import json
import uuid
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, OperationalError

from job_recommender.errors import JobNotFoundError
from job_recommender.repositories.job_search import (
    HISTORY_WINDOW_DAYS,
    JobRecommendationRepository,
    build_filter_clauses,
    build_new_jobs_count_query,
    build_search_query,
    build_search_terms,
)
from job_recommender.schemas import RecommendationFilters, ScoredJobRow


def mappings_result(rows):
    result = MagicMock()
    result.mappings.return_value.all.return_value = rows
    result.mappings.return_value.first.return_value = rows[0] if rows else None
    return result


@pytest.fixture
def repository(session_factory):
    return JobRecommendationRepository(session_factory)


class TestBuildSearchTerms:
    """Test normalization of the title and skills into search terms."""

    def test_disjunctive_search_terms(self):
        title, skills, terms = build_search_terms(
            "Senior Software Engineer", ["JavaScript", "React", "Node.js"]
        )

        assert title == "senior software engineer"
        assert skills == ["javascript", "react", "node js"]
        assert terms == "senior software engineer OR javascript OR react OR node js"

    def test_blank_skills_dropped(self):
        _, skills, terms = build_search_terms("Dev", ["!!", "Go"])

        assert skills == ["go"]
        assert terms == "dev OR go"


class TestBuildFilterClauses:
    """Test optional filter translation."""

    def test_no_filters(self):
        assert build_filter_clauses(None) == ([], {})

    def test_locations_are_ored_substring_matches(self):
        clauses, params = build_filter_clauses(RecommendationFilters(locations=["London", "Remote"]))

        assert len(clauses) == 1
        assert "LOWER(jp.location) LIKE :location_0 OR LOWER(jp.location) LIKE :location_1" in clauses[0]
        assert params == {"location_0": "%london%", "location_1": "%remote%"}

    def test_like_wildcards_escaped(self):
        _, params = build_filter_clauses(RecommendationFilters(locations=["100%_remote"]))

        assert params["location_0"] == "%100\\%\\_remote%"

    def test_employment_types_and_recency(self):
        clauses, params = build_filter_clauses(
            RecommendationFilters(employment_types=["full-time"], posted_within_days=7)
        )

        assert any("employment_type = ANY" in c for c in clauses)
        assert any("make_interval(days => :posted_within_days)" in c for c in clauses)
        assert params["employment_types"] == ["full-time"]
        assert params["posted_within_days"] == 7

    def test_excluded_companies_keep_unknown_company(self):
        """Postings with no company are not excluded by a company filter."""
        clauses, params = build_filter_clauses(RecommendationFilters(exclude_companies=["Acme"]))

        assert clauses == [
            "(jp.company_name IS NULL OR jp.company_name <> ALL(CAST(:exclude_companies AS text[])))"
        ]
        assert params["exclude_companies"] == ["Acme"]


class TestBuildSearchQuery:
    """Test the hybrid search statement."""

    def test_anonymous_query_has_no_user_signals(self):
        sql, params = build_search_query("Engineer", ["Python"])

        assert "0 AS user_saved_count" in sql
        assert "NOT IN" not in sql
        assert "user_id" not in params

    def test_authenticated_query_excludes_viewed_within_window(self):
        sql, params = build_search_query("Engineer", ["Python"], user_id="u1", exclude_viewed=True)

        assert "jp.id NOT IN" in sql
        assert params["excluded_types"] == ["viewed", "dismissed", "clicked_apply"]
        assert params["history_days"] == HISTORY_WINDOW_DAYS
        assert params["user_id"] == "u1"

    def test_exclude_viewed_false_keeps_seen_jobs(self):
        sql, params = build_search_query("Engineer", ["Python"], user_id="u1", exclude_viewed=False)

        assert "jp.id NOT IN" not in sql
        assert "user_saved_count" in sql
        assert "excluded_types" not in params

    def test_expired_postings_excluded(self):
        sql, _ = build_search_query("Engineer", ["Python"])

        assert "(jp.expire_at IS NULL OR jp.expire_at > CURRENT_DATE)" in sql

    def test_skill_regex_is_escaped(self):
        """Skills such as C++ must not produce an invalid regex."""
        _, params = build_search_query("Engineer", ["C++", "Node.js"])

        assert params["skill_pattern"] == "c\\+\\+|node js"
        assert params["skill_patterns"] == ["c\\+\\+", "node js"]
        assert params["skills"] == ["c++", "node js"]

    def test_composite_score_final_filter_and_order(self):
        sql, params = build_search_query("Engineer", ["Python"], limit=120)

        assert "LEAST(fts_score * 30, 30)" in sql
        assert "title_similarity * 25" in sql
        assert "LEAST(exact_skill_matches * 10, 30)" in sql
        assert "LEAST(fuzzy_skill_matches * 2, 10)" in sql
        assert "WHERE fts_score > 0.001" in sql
        assert "ORDER BY relevance_score DESC, posted_at DESC NULLS LAST" in sql
        assert params["limit"] == 120

    def test_fts_weights_title_over_description(self):
        sql, params = build_search_query("Engineer", ["Python"])

        assert "ts_rank_cd(jp.fts_title, websearch_to_tsquery('english', :search_terms)) * 4.0" in sql
        assert (
            "ts_rank_cd(jp.fts_description_text, websearch_to_tsquery('english', :search_terms)) * 2.0"
            in sql
        )
        assert params["search_terms"] == "engineer OR python"

    def test_recency_tiers(self):
        sql, _ = build_search_query("Engineer", ["Python"])

        assert "WHEN posted_at >= CURRENT_DATE - 7 THEN 5" in sql
        assert "WHEN posted_at >= CURRENT_DATE - 14 THEN 3" in sql
        assert "WHEN posted_at >= CURRENT_DATE - 30 THEN 1" in sql
        assert sql.index("CURRENT_DATE - 7") < sql.index("CURRENT_DATE - 14") < sql.index("CURRENT_DATE - 30")

    def test_saved_posting_bonus(self):
        sql, _ = build_search_query("Engineer", ["Python"], user_id="u1")

        assert "CASE WHEN user_saved_count > 0 THEN 5 ELSE 0 END" in sql
        assert "AND ji.interaction_type = 'saved'" in sql

    def test_title_similarity_candidate_predicate(self):
        sql, params = build_search_query("Senior Engineer", ["Python"])

        assert "similarity(LOWER(COALESCE(jp.title, '')), :normalized_title) > 0.15" in sql
        assert "OR title_similarity > 0.15" in sql
        assert params["normalized_title"] == "senior engineer"

    def test_exact_skill_count_checks_description_title_and_function(self):
        sql, _ = build_search_query("Engineer", ["Python"])

        exact = sql[sql.index("unnest(CAST(:skill_patterns"):sql.index("AS exact_skill_matches")]
        assert "LOWER(COALESCE(jp.description_text, '')) ~ skill" in exact
        assert "LOWER(COALESCE(jp.title, '')) ~ skill" in exact
        assert "LOWER(COALESCE(jp.job_function, '')) ~ skill" in exact

        fuzzy = sql[sql.index("unnest(CAST(:skills"):sql.index("AS fuzzy_skill_matches")]
        assert "strpos(LOWER(COALESCE(jp.description_text, '')), skill) > 0" in fuzzy
        assert "jp.title" not in fuzzy

    def test_filters_are_applied(self):
        sql, params = build_search_query(
            "Engineer", ["Python"], filters=RecommendationFilters(employment_types=["contract"])
        )

        assert "AND jp.employment_type = ANY(CAST(:employment_types AS text[]))" in sql
        assert params["employment_types"] == ["contract"]


class TestBuildNewJobsCountQuery:
    def test_excludes_any_recent_interaction(self):
        sql, params = build_new_jobs_count_query("Engineer", ["Python"], "u1")

        assert "COUNT(DISTINCT jp.id)" in sql
        assert "interaction_type" not in sql
        assert params["user_id"] == "u1"
        assert params["history_days"] == HISTORY_WINDOW_DAYS


class TestFindRelevantJobs:
    """Test row mapping for the hybrid search."""

    @pytest.mark.asyncio
    async def test_rows_validated_into_records(self, repository, session):
        job_id = uuid.uuid4()
        session.execute.return_value = mappings_result([
            {
                "id": job_id,
                "title": "Python Engineer",
                "company_name": "Acme",
                "posted_at": date(2024, 1, 2),
                "fts_score": 0.4,
                "title_similarity": 0.6,
                "exact_skill_matches": 2,
                "fuzzy_skill_matches": 1,
                "user_saved_count": 0,
                "user_interaction_count": 0,
                "relevance_score": 55.5,
            }
        ])

        rows = await repository.find_relevant_jobs("Python Engineer", ["Python"])

        assert len(rows) == 1
        assert isinstance(rows[0], ScoredJobRow)
        assert rows[0].id == str(job_id)
        assert rows[0].relevance_score == 55.5

    @pytest.mark.asyncio
    async def test_datastore_errors_propagate(self, repository, session):
        """Search failures are not swallowed."""
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(OperationalError):
            await repository.find_relevant_jobs("Engineer", ["Python"])

    @pytest.mark.asyncio
    async def test_new_jobs_count(self, repository, session):
        result = MagicMock()
        result.scalar.return_value = 12
        session.execute.return_value = result

        assert await repository.get_new_jobs_count("Engineer", ["Python"], "u1") == 12


class TestTrackInteraction:
    """Test interaction inserts."""

    @pytest.mark.asyncio
    async def test_inserts_interaction_row(self, repository, session):
        job_id = str(uuid.uuid4())

        await repository.track_interaction("u1", job_id, "viewed", "s1", {"timeSpent": 30})

        added = session.add.call_args[0][0]
        assert added.user_id == "u1"
        assert added.job_id == job_id
        assert added.interaction_type == "viewed"
        assert added.session_id == "s1"
        assert added.metadata_ == {"timeSpent": 30}
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_job_maps_to_not_found(self, repository, session):
        """A foreign key violation means the job does not exist."""
        session.commit.side_effect = IntegrityError("INSERT", {}, Exception("fk"))

        with pytest.raises(JobNotFoundError):
            await repository.track_interaction("u1", str(uuid.uuid4()), "saved")

        session.rollback.assert_awaited_once()


class TestGetUserJobInteractions:
    """Test interaction state aggregation."""

    @pytest.mark.asyncio
    async def test_empty_job_ids_skip_query(self, repository, session):
        assert await repository.get_user_job_interactions("u1", []) == {}
        session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_aggregated_state_keyed_by_job_id(self, repository, session):
        job_id = uuid.uuid4()
        row = MagicMock(job_id=job_id, is_viewed=True, is_saved=False, interaction_count=3)
        result = MagicMock()
        result.all.return_value = [row]
        session.execute.return_value = result

        states = await repository.get_user_job_interactions("u1", [str(job_id)])

        state = states[str(job_id)]
        assert state.is_viewed is True
        assert state.is_saved is False
        assert state.count == 3

    @pytest.mark.asyncio
    async def test_single_grouped_query(self, repository, session):
        result = MagicMock()
        result.all.return_value = []
        session.execute.return_value = result

        await repository.get_user_job_interactions("u1", ["a", "b"])

        session.execute.assert_awaited_once()
        statement = session.execute.call_args[0][0]
        compiled = str(statement.compile(dialect=postgresql.dialect()))
        assert "bool_or" in compiled
        assert "GROUP BY job_interactions.job_id" in compiled


class TestSaveSearchQuery:
    """Test best-effort analytics writes."""

    @pytest.mark.asyncio
    async def test_returns_new_id(self, repository, session):
        search_id = await repository.save_search_query(
            "u1", "s1", "Engineer", ["Python"], RecommendationFilters(locations=["Leeds"]), 40, 20
        )

        added = session.add.call_args[0][0]
        assert search_id == added.id
        assert added.filters == {"locations": ["Leeds"]}
        assert added.results_count == 40
        assert added.results_shown == 20

    @pytest.mark.asyncio
    async def test_failure_logged_and_swallowed(self, repository, session):
        session.commit.side_effect = OperationalError("INSERT", {}, Exception("down"))

        with patch("job_recommender.repositories.job_search.logger") as mock_logger:
            result = await repository.save_search_query("u1", "s1", "Engineer", ["Python"], None, 0, 0)

        assert result is None
        mock_logger.warning.assert_called_once()


class TestUserProfile:
    """Test profile read and merge-upsert."""

    @pytest.mark.asyncio
    async def test_missing_profile_returns_none(self, repository, session):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        session.execute.return_value = result

        assert await repository.get_user_profile("u1") is None

    @pytest.mark.asyncio
    async def test_profile_with_null_skills(self, repository, session):
        stored = MagicMock(
            user_id="u1",
            current_job_title=None,
            desired_job_title="Engineer",
            skills=None,
            experience_level=None,
            preferred_locations=["London"],
            preferred_employment_types=None,
            salary_expectation=None,
            excluded_companies=None,
            preferences=None,
            updated_at=None,
        )
        result = MagicMock()
        result.scalar_one_or_none.return_value = stored
        session.execute.return_value = result

        profile = await repository.get_user_profile("u1")

        assert profile.skills == []
        assert profile.preferred_locations == ["London"]

    @pytest.mark.asyncio
    async def test_upsert_coalesces_with_stored_values(self, repository, session):
        """Absent fields keep their stored value."""
        await repository.upsert_user_profile("u1", desired_job_title="Engineer", skills=["go"])

        statement = session.execute.call_args[0][0]
        compiled = str(statement.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (user_id) DO UPDATE" in compiled
        assert "coalesce(excluded.skills, user_profiles.skills)" in compiled
        assert "coalesce(excluded.preferred_locations, user_profiles.preferred_locations)" in compiled
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_upsert_rejects_unknown_fields(self, repository, session):
        with pytest.raises(TypeError):
            await repository.upsert_user_profile("u1", favourite_colour="blue")

        session.execute.assert_not_called()


class TestEngagementMetrics:
    """Test decoding of engagement and activity aggregates."""

    @pytest.mark.asyncio
    async def test_metrics_decoded(self, repository, session):
        session.execute.return_value = mappings_result([
            {
                "top_skills": json.dumps(["python", "sql"]),
                "preferred_companies": json.dumps(["Acme Corp"]),
                "avg_time": 42.5,
            }
        ])

        metrics = await repository.get_user_engagement_metrics("u1")

        assert metrics.top_skills == ["python", "sql"]
        assert metrics.preferred_companies == ["Acme Corp"]
        assert metrics.avg_interaction_time == 42.5

    @pytest.mark.asyncio
    async def test_metrics_empty_history(self, repository, session):
        session.execute.return_value = mappings_result([
            {"top_skills": "[]", "preferred_companies": "[]", "avg_time": 0}
        ])

        metrics = await repository.get_user_engagement_metrics("u1")

        assert metrics.top_skills == []
        assert metrics.preferred_companies == []
        assert metrics.avg_interaction_time == 0.0

    @pytest.mark.asyncio
    async def test_activity_summary(self, repository, session):
        session.execute.return_value = mappings_result([
            {
                "total_searches": 4,
                "total_views": 10,
                "total_saves": 2,
                "total_applications": 1,
                "average_time_spent": 90.0,
            }
        ])

        summary = await repository.get_user_activity_summary("u1")

        assert summary.total_searches == 4
        assert summary.total_applications == 1
        assert summary.average_time_spent == 90.0
