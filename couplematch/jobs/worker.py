"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the matching cycle job.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from couplematch.config import settings
from couplematch.features.match_cycle.jobs import (
    run_match_creation,
    run_match_reveal,
    run_opt_in_reset,
    run_schema_setup,
    start_match_cycle_scheduler,
)
from couplematch.infrastructure.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[object]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "match_scheduler": start_match_cycle_scheduler,
    "match_create": run_match_creation,
    "match_reveal": run_match_reveal,
    "match_reset": run_opt_in_reset,
    "match_schema": run_schema_setup,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "match_scheduler").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    result = await JOB_REGISTRY[name]()
    if result is not None:
        logger.info("Background worker finished", job=name, result=result)


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL, json_logs=not settings.debug)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
