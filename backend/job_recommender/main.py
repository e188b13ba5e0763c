"""
Job Recommendation API - Main Application Entry Point

This module initializes the FastAPI application with:
- Database connection and schema initialization
- Result cache, background task runner and recommendation service
- Background scheduler for periodic cache sweeps
- CORS middleware for frontend communication
- Prometheus metrics and error handlers
- API router registration

Architecture:
    FastAPI App
    ├── Lifespan Management (startup/shutdown)
    ├── CORS Middleware
    ├── Prometheus Middleware (/metrics)
    └── API Router (/api)
        ├── POST /recommendations - Ranked job recommendations
        ├── POST /interactions    - Track views, saves, dismissals
        ├── POST /feedback        - Recommendation feedback
        └── GET|PUT /profile      - User profile and engagement
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from job_recommender.api import api_router
from job_recommender.config import get_settings
from job_recommender.database import async_session, close_db, init_db
from job_recommender.errors import register_exception_handlers
from job_recommender.middleware.metrics import setup_metrics
from job_recommender.repositories import JobRecommendationRepository
from job_recommender.scheduler import start_scheduler, stop_scheduler
from job_recommender.services.background import DetachedTaskRunner
from job_recommender.services.cache import create_cache
from job_recommender.services.personalization import PersonalizationService
from job_recommender.services.recommendation import JobRecommendationService

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle events.

    Startup:
        1. Configure logging
        2. Initialize database tables (optional)
        3. Build cache, task runner and recommendation service
        4. Start the cache sweep scheduler

    Shutdown:
        1. Stop the scheduler
        2. Wait for detached tasks to finish
        3. Release the cache (a shared Redis namespace is left intact), dispose the engine

    Yields:
        Control to the application during its runtime
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if settings.create_tables_on_startup:
        await init_db()

    cache = create_cache(settings)
    task_runner = DetachedTaskRunner()
    repository = JobRecommendationRepository(async_session)

    app.state.cache = cache
    app.state.task_runner = task_runner
    app.state.recommendation_service = JobRecommendationService(
        repository=repository,
        cache=cache,
        personalization=PersonalizationService(repository),
        task_runner=task_runner,
        settings=settings,
    )

    start_scheduler(cache)
    logger.info(f"Job recommendation API started (cache backend: {cache.backend_name})")
    yield
    stop_scheduler()
    await task_runner.drain()
    await cache.shutdown()
    await close_db()


app = FastAPI(
    title="Job Recommendation API",
    description="Hybrid full-text, trigram and skill-based job recommendations",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_metrics(app)
register_exception_handlers(app)

app.include_router(api_router, prefix="/api")


@app.get("/health")
async def health_check():
    cache = getattr(app.state, "cache", None)
    cache_stats = cache.get_stats() if cache else None
    cache_healthy = await cache.health_check() if cache else False
    return {
        "status": "healthy",
        "cache": {"healthy": cache_healthy, "stats": cache_stats},
    }
