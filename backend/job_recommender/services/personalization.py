"""
Personalization Engine

Adjusts recommendation scores using a user's last 90 days of engagement:

    +5                          company matches a preferred company (case-insensitive)
    +min(2 * skill_hits, 8)     top searched skills found in title or description

The boost is additive and never negative. Metrics are fetched once per
request; when that fetch fails the jobs are returned unmodified and the
result says so (BoostResult.applied is False).
"""

import logging
from typing import Dict, List, NamedTuple

from job_recommender.middleware.metrics import record_best_effort_failure
from job_recommender.schemas import ActivitySummary, EngagementMetrics, ScoredJobPost

logger = logging.getLogger(__name__)

COMPANY_BOOST = 5.0
SKILL_BOOST_PER_MATCH = 2.0
MAX_SKILL_BOOST = 8.0
SUGGESTED_COMPANY_LIMIT = 5


class BoostResult(NamedTuple):
    jobs: List[ScoredJobPost]
    applied: bool


def calculate_boost(job: ScoredJobPost, metrics: EngagementMetrics) -> float:
    """Boost for one job given the user's engagement metrics."""
    boost = 0.0

    preferred = {company.lower() for company in metrics.preferred_companies}
    if job.company_name and job.company_name.lower() in preferred:
        boost += COMPANY_BOOST

    haystack = f"{job.title or ''} {job.description_text or ''}".lower()
    skill_hits = sum(1 for skill in metrics.top_skills if skill and skill.lower() in haystack)
    boost += min(skill_hits * SKILL_BOOST_PER_MATCH, MAX_SKILL_BOOST)

    return boost


def calculate_engagement_score(summary: ActivitySummary) -> int:
    """
    Engagement score in [0, 100] from recent activity.

    Components (each capped):
        searches * 2        20
        views               25
        saves * 2           25
        applications * 5    20
        avg seconds / 60    10
    """
    score = (
        min(summary.total_searches * 2, 20)
        + min(summary.total_views, 25)
        + min(summary.total_saves * 2, 25)
        + min(summary.total_applications * 5, 20)
        + min(summary.average_time_spent / 60, 10)
    )
    # Half-up rounding so 49.5 -> 50, unlike round()
    return min(int(score + 0.5), 100)


class PersonalizationService:
    """
    Applies engagement-based boosts to enriched recommendations.

    Attributes:
        repository: JobRecommendationRepository used for engagement metrics
    """

    def __init__(self, repository):
        self.repository = repository

    async def apply_personalization_boost(
        self,
        jobs: List[ScoredJobPost],
        user_id: str,
    ) -> BoostResult:
        try:
            metrics = await self.repository.get_user_engagement_metrics(user_id)
        except Exception as e:
            logger.warning(f"Personalization skipped for user {user_id}: {e}")
            record_best_effort_failure("personalization")
            return BoostResult(jobs=jobs, applied=False)

        boosted = []
        for job in jobs:
            boost = calculate_boost(job, metrics)
            boosted.append(
                job.model_copy(
                    update={
                        "personalization_boost": boost,
                        "relevance_score": round(job.relevance_score + boost, 2),
                    }
                )
            )

        return BoostResult(jobs=boosted, applied=True)

    def calculate_engagement_score(self, summary: ActivitySummary) -> int:
        return calculate_engagement_score(summary)

    async def suggest_filters_for_user(self, user_id: str) -> Dict[str, List[str]]:
        """Suggested search filters derived from engagement history."""
        metrics = await self.repository.get_user_engagement_metrics(user_id)
        suggestions: Dict[str, List[str]] = {}
        if metrics.preferred_companies:
            suggestions["preferred_companies"] = metrics.preferred_companies[:SUGGESTED_COMPANY_LIMIT]
        return suggestions
