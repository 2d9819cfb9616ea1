"""
Match cycle job runners.

`start_match_cycle_scheduler` is the long-running worker: it wires the three
phases to their weekly instants and runs until stopped. The `run_match_*`
helpers execute a single phase immediately, for operators re-running a
missed instant by hand.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime

from couplematch.config import settings
from couplematch.db.pool import db_pool
from couplematch.features.match_cycle.services.cycle_service import (
    MatchCycleService,
    match_cycle_service,
)
from couplematch.features.match_cycle.services.scheduler import (
    WeeklyScheduler,
    WeeklyTrigger,
    validate_cycle_calendar,
)
from couplematch.infrastructure.observability.logging import get_logger
from couplematch.services.redis_client import fast_redis

logger = get_logger(__name__)


def build_cycle_scheduler(
    service: MatchCycleService | None = None,
    scheduler: WeeklyScheduler | None = None,
) -> WeeklyScheduler:
    """Register create, reveal and reset on a scheduler after validating the calendar."""
    service = service or match_cycle_service
    scheduler = scheduler or WeeklyScheduler(timezone=settings.MATCH_TIMEZONE)

    validate_cycle_calendar(
        WeeklyTrigger.parse(settings.MATCH_CREATE_SCHEDULE),
        WeeklyTrigger.parse(settings.MATCH_REVEAL_SCHEDULE),
        WeeklyTrigger.parse(settings.MATCH_RESET_SCHEDULE),
        settings.MIN_PHASE_GAP_SECONDS,
    )

    scheduler.on_schedule(settings.MATCH_CREATE_SCHEDULE, service.create_matches, "match_create")
    scheduler.on_schedule(settings.MATCH_REVEAL_SCHEDULE, service.reveal_matches, "match_reveal")
    scheduler.on_schedule(settings.MATCH_RESET_SCHEDULE, service.reset_opt_in, "match_reset")
    return scheduler


@asynccontextmanager
async def cycle_resources() -> AsyncGenerator[None, None]:
    """Open the database pool and Redis for a worker process, closing both on exit."""
    await db_pool.initialize()
    try:
        await fast_redis.initialize()
    except Exception:
        await db_pool.close()
        raise

    try:
        yield
    finally:
        await fast_redis.close()
        await db_pool.close()


async def start_match_cycle_scheduler() -> None:
    """Entry point for the long-running match cycle worker."""
    scheduler = build_cycle_scheduler()
    logger.info(
        "Starting match cycle scheduler",
        timezone=settings.MATCH_TIMEZONE,
        create=settings.MATCH_CREATE_SCHEDULE,
        reveal=settings.MATCH_REVEAL_SCHEDULE,
        reset=settings.MATCH_RESET_SCHEDULE,
    )
    async with cycle_resources():
        await scheduler.run_forever()


async def run_match_creation(now: datetime | None = None) -> dict:
    async with cycle_resources():
        return await match_cycle_service.create_matches(now)


async def run_match_reveal(now: datetime | None = None) -> dict:
    async with cycle_resources():
        return await match_cycle_service.reveal_matches(now)


async def run_opt_in_reset(now: datetime | None = None) -> dict:
    async with cycle_resources():
        return await match_cycle_service.reset_opt_in(now)


async def run_schema_setup() -> None:
    """Create the match store tables; safe to run against an existing database."""
    await db_pool.initialize()
    try:
        await db_pool.apply_schema()
    finally:
        await db_pool.close()
