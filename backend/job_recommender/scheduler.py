"""
Background Scheduler - Periodic Result Cache Maintenance

The in-memory result cache enforces expiry on read, so entries that are
never read again would linger. A periodic sweep drops them.

Default Schedule: Every 60 seconds (configurable via CACHE_SWEEP_INTERVAL_SECONDS)
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from job_recommender.services.cache import ResultCache
from job_recommender.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()
scheduler = AsyncIOScheduler()


async def sweep_cache(cache: ResultCache) -> int:
    """Scheduled task: remove expired cache entries."""
    try:
        return await cache.sweep_expired()
    except Exception as e:
        logger.warning(f"Cache sweep failed: {e}")
        return 0


def start_scheduler(cache: ResultCache):
    """Start the background scheduler"""
    scheduler.add_job(
        sweep_cache,
        trigger=IntervalTrigger(seconds=settings.cache_sweep_interval_seconds),
        args=[cache],
        id="sweep_result_cache",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started: sweeping result cache every {settings.cache_sweep_interval_seconds}s")


def stop_scheduler():
    """Stop the background scheduler"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
