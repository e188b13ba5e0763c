from typing import Optional
from fastapi import APIRouter, Depends, Request
from job_recommender.api.dependencies import get_recommendation_service
from job_recommender.auth import get_optional_user_id, get_session_id, read_session_id, require_user_id
from job_recommender.schemas import (
    ActionResponse,
    FeedbackRequest,
    InteractionRequest,
    RecommendationData,
    RecommendationRequest,
    RecommendationResponse,
)
from job_recommender.services.recommendation import (
    JobRecommendationService,
    RecommendationQuery,
    build_pagination,
)

router = APIRouter()


@router.post("/recommendations", response_model=RecommendationResponse)
async def get_recommendations(
    body: RecommendationRequest,
    user_id: Optional[str] = Depends(get_optional_user_id),
    session_id: str = Depends(get_session_id),
    service: JobRecommendationService = Depends(get_recommendation_service),
):
    result = await service.generate_recommendations(
        RecommendationQuery(
            job_title=body.job_title,
            skills=body.skills,
            user_id=user_id,
            session_id=session_id,
            filters=body.filters,
            exclude_viewed=body.exclude_viewed,
            page=body.page,
            page_size=body.page_size,
        )
    )

    return RecommendationResponse(
        data=RecommendationData(
            recommendations=result.recommendations,
            total_count=result.total_count,
            new_jobs_count=result.new_jobs_count if user_id else None,
            search_metadata=result.metadata,
            pagination=build_pagination(result.total_count, body.page, body.page_size),
            personalization_applied=result.personalization_applied,
        )
    )


@router.post("/interactions", response_model=ActionResponse)
async def track_interaction(
    body: InteractionRequest,
    request: Request,
    user_id: str = Depends(require_user_id),
    service: JobRecommendationService = Depends(get_recommendation_service),
):
    metadata = body.metadata.model_dump(by_alias=True, exclude_none=True) if body.metadata else None
    await service.track_job_interaction(
        user_id,
        body.job_id,
        body.interaction_type.value,
        session_id=read_session_id(request),
        metadata=metadata,
    )
    return ActionResponse(message="Interaction tracked successfully")


@router.post("/feedback", response_model=ActionResponse)
async def submit_feedback(
    body: FeedbackRequest,
    user_id: str = Depends(require_user_id),
    service: JobRecommendationService = Depends(get_recommendation_service),
):
    await service.submit_feedback(user_id, body.job_id, body.feedback_type, body.reason)
    return ActionResponse(message="Feedback submitted successfully")
