from job_recommender.schemas.recommendation import (
    RecommendationFilters,
    RecommendationRequest,
    ScoredJobRow,
    ScoredJobPost,
    SearchMetadata,
    PaginationMetadata,
    RecommendationData,
    RecommendationResponse,
)
from job_recommender.schemas.interaction import (
    InteractionType,
    InteractionMetadata,
    InteractionRequest,
    FeedbackRequest,
    InteractionState,
    ActionResponse,
    CACHE_INVALIDATING_INTERACTIONS,
)
from job_recommender.schemas.profile import (
    UserProfileRecord,
    ProfileUpdate,
    EngagementMetrics,
    ActivitySummary,
    ProfileOverview,
    ProfileOverviewResponse,
)

__all__ = [
    "RecommendationFilters",
    "RecommendationRequest",
    "ScoredJobRow",
    "ScoredJobPost",
    "SearchMetadata",
    "PaginationMetadata",
    "RecommendationData",
    "RecommendationResponse",
    "InteractionType",
    "InteractionMetadata",
    "InteractionRequest",
    "FeedbackRequest",
    "InteractionState",
    "ActionResponse",
    "CACHE_INVALIDATING_INTERACTIONS",
    "UserProfileRecord",
    "ProfileUpdate",
    "EngagementMetrics",
    "ActivitySummary",
    "ProfileOverview",
    "ProfileOverviewResponse",
]
