from job_recommender.models.job import JobPost
from job_recommender.models.interaction import JobInteraction, SearchQuery
from job_recommender.models.profile import UserProfile

__all__ = ["JobPost", "JobInteraction", "SearchQuery", "UserProfile"]
