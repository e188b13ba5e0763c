from fastapi import APIRouter
from job_recommender.api import profile, recommendations

api_router = APIRouter()
api_router.include_router(recommendations.router, tags=["recommendations"])
api_router.include_router(profile.router, prefix="/profile", tags=["profile"])
