"""
Service process: opens the pool and Redis and serves the health routes.
The weekly scheduler runs here only when RUN_SCHEDULER_IN_API is set.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from couplematch.config import settings
from couplematch.db.pool import db_pool
from couplematch.features.match_cycle.jobs import build_cycle_scheduler
from couplematch.infrastructure.observability.logging import get_logger, setup_logging
from couplematch.routes import health
from couplematch.services.redis_client import fast_redis

setup_logging(log_level=settings.LOG_LEVEL, json_logs=not settings.debug)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    startup_tasks = []

    try:
        await db_pool.initialize()
        startup_tasks.append("database_pool")

        await fast_redis.initialize()
        startup_tasks.append("redis")

        if settings.RUN_SCHEDULER_IN_API:
            scheduler = build_cycle_scheduler()
            app.state.scheduler = scheduler
            app.state.scheduler_task = asyncio.create_task(scheduler.run_forever())
            startup_tasks.append("scheduler")
        else:
            logger.info("Weekly scheduler runs in the worker process, not starting it here")

        logger.info("All services initialized successfully", services=startup_tasks)

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e), completed_tasks=startup_tasks)

        if "redis" in startup_tasks:
            await fast_redis.close()
        if "database_pool" in startup_tasks:
            await db_pool.close()
        raise

    yield

    logger.info("Application shutting down")

    # Stop the scheduler before closing the resources its phases use
    if "scheduler" in startup_tasks:
        await app.state.scheduler.stop(grace_seconds=settings.SCHEDULER_STOP_GRACE_SECONDS)
        await asyncio.gather(app.state.scheduler_task, return_exceptions=True)
    await fast_redis.close()
    await db_pool.close()

    logger.info("All services closed successfully")


app = FastAPI(
    title="Couple Match",
    description="Weekly couple-matching cycle",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
