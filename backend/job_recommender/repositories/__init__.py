from job_recommender.repositories.job_search import JobRecommendationRepository

__all__ = ["JobRecommendationRepository"]
