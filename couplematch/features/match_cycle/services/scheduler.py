"""
Weekly trigger scheduler for the match cycle.

Triggers are cron-like weekly instants (`"1 23 * * 2"`, day 0 = Sunday) or the
friendlier `"tue 23:01"`. Each registered handler runs in its own loop:
sleep until the next instant, fire, log the outcome, repeat. A failing
handler is logged and retried at its next weekly instant; it never stops
the scheduler.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from couplematch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

WEEK_SECONDS = 7 * 24 * 3600
MAX_SLEEP_CHUNK_SECONDS = 3600.0

DAY_NAMES = {
    "sun": 0,
    "mon": 1,
    "tue": 2,
    "wed": 3,
    "thu": 4,
    "fri": 5,
    "sat": 6,
}

Handler = Callable[[datetime], Awaitable[Any]]


class ScheduleConfigError(ValueError):
    """Invalid trigger spec or cycle calendar."""


def _parse_int(value: str, low: int, high: int, what: str, spec: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise ScheduleConfigError(f"Invalid {what} '{value}' in schedule '{spec}'") from None
    if not low <= number <= high:
        raise ScheduleConfigError(f"{what} out of range in schedule '{spec}'")
    return number


def _parse_day(value: str, spec: str) -> int:
    key = value.strip().lower()[:3]
    if key in DAY_NAMES:
        return DAY_NAMES[key]
    day = _parse_int(value, 0, 7, "day of week", spec)
    return day % 7  # cron allows 7 for Sunday


@dataclass(frozen=True, slots=True)
class WeeklyTrigger:
    """A fixed instant in a repeating 7-day period."""

    day_of_week: int  # 0 = Sunday
    hour: int
    minute: int

    @classmethod
    def parse(cls, spec: str) -> WeeklyTrigger:
        parts = spec.split()
        if len(parts) == 5:
            minute, hour, day_of_month, month, day = parts
            if day_of_month != "*" or month != "*":
                raise ScheduleConfigError(
                    f"Only weekly schedules are supported, got '{spec}'"
                )
            return cls(
                day_of_week=_parse_day(day, spec),
                hour=_parse_int(hour, 0, 23, "hour", spec),
                minute=_parse_int(minute, 0, 59, "minute", spec),
            )

        if len(parts) == 2 and ":" in parts[1]:
            hour, minute = parts[1].split(":", 1)
            return cls(
                day_of_week=_parse_day(parts[0], spec),
                hour=_parse_int(hour, 0, 23, "hour", spec),
                minute=_parse_int(minute, 0, 59, "minute", spec),
            )

        raise ScheduleConfigError(f"Unrecognised schedule '{spec}'")

    @property
    def week_offset_seconds(self) -> int:
        """Seconds from Sunday 00:00 to this instant."""
        return ((self.day_of_week * 24 + self.hour) * 60 + self.minute) * 60

    def next_fire(self, now: datetime, tz: str | ZoneInfo = "UTC") -> datetime:
        """First instant strictly after `now`, in the given timezone."""
        zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        local_now = now.astimezone(zone)

        current_day = (local_now.weekday() + 1) % 7  # Monday=0 -> cron numbering
        days_ahead = (self.day_of_week - current_day) % 7
        candidate = datetime.combine(
            local_now.date() + timedelta(days=days_ahead),
            time(self.hour, self.minute),
            tzinfo=zone,
        )
        if candidate <= local_now:
            candidate += timedelta(days=7)
        return candidate

    def describe(self) -> str:
        day = next(name for name, number in DAY_NAMES.items() if number == self.day_of_week)
        return f"{day} {self.hour:02d}:{self.minute:02d}"


def validate_cycle_calendar(
    create: WeeklyTrigger,
    reveal: WeeklyTrigger,
    reset: WeeklyTrigger,
    min_gap_seconds: int = 60,
) -> None:
    """
    Check that, walking forward from create, reveal comes before reset and
    every pair of consecutive phases is at least `min_gap_seconds` apart.
    """
    gap_create_reveal = (reveal.week_offset_seconds - create.week_offset_seconds) % WEEK_SECONDS
    gap_reveal_reset = (reset.week_offset_seconds - reveal.week_offset_seconds) % WEEK_SECONDS
    gap_reset_create = (create.week_offset_seconds - reset.week_offset_seconds) % WEEK_SECONDS

    if gap_create_reveal + gap_reveal_reset + gap_reset_create != WEEK_SECONDS:
        raise ScheduleConfigError("Cycle calendar must run create, then reveal, then reset")

    for name, gap in (
        ("create->reveal", gap_create_reveal),
        ("reveal->reset", gap_reveal_reset),
        ("reset->create", gap_reset_create),
    ):
        if gap < min_gap_seconds:
            raise ScheduleConfigError(
                f"Phases {name} are {gap}s apart, minimum is {min_gap_seconds}s"
            )


@dataclass(slots=True)
class ScheduledJob:
    name: str
    trigger: WeeklyTrigger
    handler: Handler
    next_fire_at: datetime | None = None
    last_fired_at: datetime | None = None
    last_outcome: str | None = None
    last_error: str | None = None
    runs: int = 0
    failures: int = 0
    firing: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "trigger": self.trigger.describe(),
            "next_fire_at": self.next_fire_at.isoformat() if self.next_fire_at else None,
            "last_fired_at": self.last_fired_at.isoformat() if self.last_fired_at else None,
            "last_outcome": self.last_outcome,
            "last_error": self.last_error,
            "runs": self.runs,
            "failures": self.failures,
            "firing": self.firing,
        }


class WeeklyScheduler:
    """
    Runs each registered handler at its weekly instant.

    `clock` and `sleep` are injectable so tests can drive time directly;
    handlers can also be invoked on their own with a fixed `now`.
    """

    def __init__(
        self,
        timezone: str = "UTC",
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        try:
            self.zone = ZoneInfo(timezone)
        except ZoneInfoNotFoundError as e:
            raise ScheduleConfigError(f"Unknown timezone '{timezone}'") from e
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sleep = sleep or asyncio.sleep
        self.jobs: list[ScheduledJob] = []
        self._tasks: list[asyncio.Task] = []
        self._running = False

    def on_schedule(self, spec: str, handler: Handler, name: str | None = None) -> ScheduledJob:
        """Register `handler` to fire at the weekly instant described by `spec`."""
        job = ScheduledJob(
            name=name or getattr(handler, "__name__", "job"),
            trigger=WeeklyTrigger.parse(spec),
            handler=handler,
        )
        self.jobs.append(job)
        logger.info("Weekly trigger registered", job=job.name, trigger=job.trigger.describe())
        return job

    async def fire(self, job: ScheduledJob, now: datetime | None = None) -> bool:
        """Run one firing of a job. Failures are logged, never raised."""
        fired_at = now or self._clock()
        job.last_fired_at = fired_at
        job.runs += 1
        job.firing = True
        try:
            await job.handler(fired_at)
        except Exception as e:
            job.failures += 1
            job.last_outcome = "failed"
            job.last_error = f"{type(e).__name__}: {e}"
            logger.error(
                "Scheduled job failed, will retry at next weekly instant",
                job=job.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        finally:
            job.firing = False

        job.last_outcome = "ok"
        job.last_error = None
        logger.info("Scheduled job completed", job=job.name)
        return True

    async def _sleep_until(self, target: datetime) -> None:
        # Chunked so a suspended host or clock jump is noticed within the hour
        while self._running:
            remaining = (target - self._clock()).total_seconds()
            if remaining <= 0:
                return
            await self._sleep(min(remaining, MAX_SLEEP_CHUNK_SECONDS))

    async def _run_job_loop(self, job: ScheduledJob) -> None:
        while self._running:
            job.next_fire_at = job.trigger.next_fire(self._clock(), self.zone)
            logger.debug("Next firing scheduled", job=job.name, at=job.next_fire_at.isoformat())
            await self._sleep_until(job.next_fire_at)
            if not self._running:
                break
            await self.fire(job, job.next_fire_at)

    async def run_forever(self) -> None:
        """Run every job loop until stop() is called or the task is cancelled."""
        if not self.jobs:
            raise ScheduleConfigError("No triggers registered")

        self._running = True
        logger.info(
            "Weekly scheduler started",
            jobs=[job.name for job in self.jobs],
            timezone=str(self.zone),
        )
        self._tasks = [
            asyncio.create_task(self._run_job_loop(job), name=f"weekly:{job.name}")
            for job in self.jobs
        ]
        try:
            await asyncio.gather(*self._tasks)
        finally:
            self._running = False
            for task in self._tasks:
                task.cancel()
            logger.info("Weekly scheduler stopped")

    def request_stop(self) -> None:
        """Ask the loops to exit after their current step."""
        self._running = False

    async def stop(self, grace_seconds: float = 30.0) -> None:
        """
        Stop every job loop.

        Loops that are only sleeping are cancelled at once. A job in the middle
        of a firing gets up to `grace_seconds` to finish before it is cancelled.
        """
        self.request_stop()
        firing = [task for job, task in zip(self.jobs, self._tasks) if job.firing]
        if firing:
            logger.info("Waiting for running jobs before stopping", count=len(firing))
            _, unfinished = await asyncio.wait(firing, timeout=grace_seconds)
            if unfinished:
                logger.warning(
                    "Jobs still running after grace period, cancelling",
                    count=len(unfinished),
                    grace_seconds=grace_seconds,
                )
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    def get_status(self) -> dict:
        return {
            "running": self._running,
            "timezone": str(self.zone),
            "jobs": [job.to_dict() for job in self.jobs],
        }
