from fastapi import APIRouter, Depends
from job_recommender.api.dependencies import get_recommendation_service
from job_recommender.auth import require_user_id
from job_recommender.schemas import ProfileOverviewResponse, ProfileUpdate
from job_recommender.services.recommendation import JobRecommendationService

router = APIRouter()


@router.get("", response_model=ProfileOverviewResponse)
async def get_profile(
    user_id: str = Depends(require_user_id),
    service: JobRecommendationService = Depends(get_recommendation_service),
):
    overview = await service.get_profile_overview(user_id)
    return ProfileOverviewResponse(data=overview)


@router.put("", response_model=ProfileOverviewResponse)
async def update_profile(
    update: ProfileUpdate,
    user_id: str = Depends(require_user_id),
    service: JobRecommendationService = Depends(get_recommendation_service),
):
    await service.update_profile(user_id, update)
    overview = await service.get_profile_overview(user_id)
    return ProfileOverviewResponse(data=overview)
