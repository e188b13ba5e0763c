from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional


class InteractionType(str, Enum):
    VIEWED = "viewed"
    SAVED = "saved"
    DISMISSED = "dismissed"
    CLICKED_APPLY = "clicked_apply"
    SHARED = "shared"
    REPORTED = "reported"


# Interactions that change what a personalized search should return
CACHE_INVALIDATING_INTERACTIONS = frozenset({"saved", "dismissed", "clicked_apply"})


class InteractionMetadata(BaseModel):
    time_spent: Optional[float] = Field(None, alias="timeSpent", ge=0)
    scroll_depth: Optional[float] = Field(None, alias="scrollDepth", ge=0, le=100)
    source: Optional[str] = None

    class Config:
        populate_by_name = True


class InteractionRequest(BaseModel):
    job_id: str = Field(..., alias="jobId", min_length=1)
    interaction_type: InteractionType = Field(..., alias="interactionType")
    metadata: Optional[InteractionMetadata] = None

    class Config:
        populate_by_name = True


class FeedbackRequest(BaseModel):
    job_id: str = Field(..., alias="jobId", min_length=1)
    feedback_type: str = Field(
        ..., alias="feedbackType", min_length=1, max_length=50, pattern=r"^[a-z_]+$"
    )
    reason: Optional[str] = Field(None, max_length=1000)

    class Config:
        populate_by_name = True


class InteractionState(BaseModel):
    is_viewed: bool = False
    is_saved: bool = False
    count: int = 0


class ActionResponse(BaseModel):
    success: bool = True
    message: str
