from fastapi import Request
from job_recommender.services.recommendation import JobRecommendationService


def get_recommendation_service(request: Request) -> JobRecommendationService:
    """Service instance built by the application lifespan."""
    return request.app.state.recommendation_service
