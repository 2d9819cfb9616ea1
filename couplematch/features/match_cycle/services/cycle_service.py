"""
Weekly match cycle - the create, reveal and reset phases.

Each phase is safe to run more than once:
- create does nothing while pending matches from an earlier run still exist;
- reveal only notifies the records its own guarded update moved, so a
  second or concurrent run sends nothing;
- reset only clears flags that are still set.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

from couplematch.config import settings
from couplematch.features.match_cycle.domain import (
    MatchRecord,
    MatchStatus,
    transition_status,
)
from couplematch.features.match_cycle.pipeline.pairing import PairingEngine
from couplematch.features.match_cycle.repository import MatchRepository, UserRepository
from couplematch.infrastructure.observability.logging import get_logger, log_phase_outcome

from .notifier import MatchNotifier, match_notifier

logger = get_logger(__name__)

PHASE_CREATE = "create"
PHASE_REVEAL = "reveal"
PHASE_RESET = "reset"
PHASES = (PHASE_CREATE, PHASE_REVEAL, PHASE_RESET)


class MatchCycleError(Exception):
    """Raised when a cycle phase aborts."""

    def __init__(self, message: str, phase: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.phase = phase
        self.recoverable = recoverable


class CycleMetrics:
    """Metrics tracking for one run of a cycle phase."""

    def __init__(self, phase: str):
        self.phase = phase
        self.reset()

    def reset(self):
        """Reset all metrics for new phase run."""
        self.start_time = datetime.now(UTC)
        self.users_considered = 0
        self.pairs_proposed = 0
        self.pairs_created = 0
        self.matches_revealed = 0
        self.notifications_sent = 0
        self.notification_failures = 0
        self.users_reset = 0
        self.skipped_reason: str | None = None
        self.total_duration_seconds = 0.0
        self.errors: list[dict] = []

    def record_skip(self, reason: str):
        self.skipped_reason = reason

    def record_notification(self, user_id: str, delivered: bool):
        if delivered:
            self.notifications_sent += 1
            return

        self.notification_failures += 1
        self.errors.append(
            {
                "user_id": user_id,
                "error_type": "notification",
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    def record_error(self, error: str):
        self.errors.append(
            {
                "error": error,
                "error_type": "phase",
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": f"match_{self.phase}",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "users_considered": self.users_considered,
            "pairs_proposed": self.pairs_proposed,
            "pairs_created": self.pairs_created,
            "matches_revealed": self.matches_revealed,
            "notifications_sent": self.notifications_sent,
            "notification_failures": self.notification_failures,
            "users_reset": self.users_reset,
            "skipped_reason": self.skipped_reason,
            "errors_count": len(self.errors),
        }


class MatchCycleService:
    """
    Drives the match lifecycle for one weekly cycle.

    Stores and the notifier are injected so the phases can be exercised with
    in-memory fakes and a fixed `now`.
    """

    def __init__(
        self,
        user_repository: Any = UserRepository,
        match_repository: Any = MatchRepository,
        notifier: MatchNotifier | None = None,
        engine: PairingEngine | None = None,
        reset_scope: str | None = None,
    ):
        self.users = user_repository
        self.matches = match_repository
        self.notifier = notifier or match_notifier
        self.engine = engine or PairingEngine()
        self.reset_scope = reset_scope or settings.OPT_IN_RESET_SCOPE
        if self.reset_scope not in {"opted_in", "all"}:
            raise ValueError(f"Unknown opt-in reset scope '{self.reset_scope}'")

        self._running: set[str] = set()
        self._phase_lock = asyncio.Lock()
        self.last_run_time: dict[str, datetime] = {}
        self.last_metrics: dict[str, dict] = {}

    async def create_matches(self, now: datetime | None = None) -> dict:
        """Pair the opted-in population and store the couples as pending."""
        return await self._run_phase(PHASE_CREATE, self._create, now)

    async def reveal_matches(self, now: datetime | None = None) -> dict:
        """Flip pending matches to revealed and notify both members."""
        return await self._run_phase(PHASE_REVEAL, self._reveal, now)

    async def reset_opt_in(self, now: datetime | None = None) -> dict:
        """Clear opt-in flags so users opt in afresh for the next cycle."""
        return await self._run_phase(PHASE_RESET, self._reset, now)

    async def _run_phase(self, phase: str, step, now: datetime | None) -> dict:
        if phase in self._running:
            logger.warning("Match cycle phase already running, skipping", phase=phase)
            return {"skipped": True, "reason": "already_running", "job_run": f"match_{phase}"}

        now = now or datetime.now(UTC)
        metrics = CycleMetrics(phase)
        self._running.add(phase)

        try:
            # Phases in one process run one at a time; a reset fired while a
            # reveal is still publishing waits for it
            async with self._phase_lock:
                logger.info("Starting match cycle phase", phase=phase, now=now.isoformat())
                await step(metrics, now)

            metrics.finalize()
            self.last_run_time[phase] = now
            result = metrics.to_dict()
            self.last_metrics[phase] = result
            log_phase_outcome(phase, result)
            return result

        except Exception as e:
            metrics.record_error(str(e))
            metrics.finalize()
            self.last_metrics[phase] = {**metrics.to_dict(), "job_error": str(e)}
            logger.error(
                "Match cycle phase failed",
                phase=phase,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise MatchCycleError(
                f"Match {phase} phase failed: {e}",
                phase=phase,
                recoverable=getattr(e, "recoverable", True),
            ) from e

        finally:
            self._running.discard(phase)

    async def _create(self, metrics: CycleMetrics, now: datetime) -> None:
        pending = await self.matches.count_by_status(MatchStatus.PENDING)
        if pending:
            logger.info(
                "Pending matches already exist for this cycle, not creating more",
                pending=pending,
            )
            metrics.record_skip("pending_matches_exist")
            return

        users = await self.users.find_opted_in()
        metrics.users_considered = len(users)
        if len(users) < 2:
            logger.info("Not enough users opted in", opted_in=len(users))
            metrics.record_skip("not_enough_users")
            return

        history = await self.matches.find_history()

        # Pure computation over the snapshot taken above
        outcome = self.engine.run(users, history, now)
        metrics.pairs_proposed = len(outcome.records)

        if not outcome.records:
            logger.info(
                "No valid matches this cycle",
                group_a=outcome.group_a_size,
                group_b=outcome.group_b_size,
                history_size=len(history),
            )
            metrics.record_skip("no_new_pairs")
            return

        metrics.pairs_created = await self.matches.insert_many(outcome.records)
        logger.info(
            "Pending matches created, locked until reveal",
            created=metrics.pairs_created,
            unmatched_a=len(outcome.unmatched_a),
        )

    async def _reveal(self, metrics: CycleMetrics, now: datetime) -> None:
        pending = await self.matches.find_by_status(MatchStatus.PENDING)
        if not pending:
            logger.info("No pending matches to reveal")
            metrics.record_skip("no_pending_matches")
            return

        changed_ids = await self.matches.update_status(
            [record.id for record in pending],
            MatchStatus.REVEALED,
            expected_status=MatchStatus.PENDING,
        )
        metrics.matches_revealed = len(changed_ids)
        if len(changed_ids) < len(pending):
            logger.warning(
                "Some pending matches were revealed by another run",
                loaded=len(pending),
                revealed_here=len(changed_ids),
            )

        # Only records this run moved get notified, after the change is stored
        changed = set(changed_ids)
        for record in pending:
            if record.id not in changed:
                continue
            revealed = MatchRecord(
                id=record.id,
                couple=record.couple,
                status=transition_status(MatchStatus.PENDING, "reveal"),
                created_at=record.created_at,
            )
            payload = {"match": revealed.to_payload()}
            for user_id in revealed.couple:
                delivered = await self._notify(user_id, settings.MATCH_DELIVERED_EVENT, payload)
                metrics.record_notification(user_id, delivered)

        logger.info(
            "Matches revealed to users",
            revealed=metrics.matches_revealed,
            notifications_sent=metrics.notifications_sent,
            notification_failures=metrics.notification_failures,
        )

    async def _reset(self, metrics: CycleMetrics, now: datetime) -> None:
        if self.reset_scope == "opted_in":
            users = await self.users.find_opted_in()
            metrics.users_considered = len(users)
            if users:
                metrics.users_reset = await self.users.reset_opt_in([u.id for u in users])
        else:
            metrics.users_reset = await self.users.reset_opt_in(None)

        delivered = await self._broadcast(
            settings.OPT_IN_RESET_EVENT, {"reset_at": now.isoformat()}
        )
        if not delivered:
            metrics.notification_failures += 1

        logger.info(
            "Opt-in reset complete, new weekly cycle started",
            scope=self.reset_scope,
            users_reset=metrics.users_reset,
        )

    async def _notify(self, user_id: str, event_name: str, payload: dict) -> bool:
        try:
            return bool(await self.notifier.publish(user_id, event_name, payload))
        except Exception as e:
            logger.warning(
                "Notifier raised during delivery", user_id=user_id, error=str(e)
            )
            return False

    async def _broadcast(self, event_name: str, payload: dict) -> bool:
        try:
            return bool(await self.notifier.broadcast(event_name, payload))
        except Exception as e:
            logger.warning("Notifier raised during broadcast", event_name=event_name, error=str(e))
            return False

    def get_job_status(self) -> dict:
        """Current status of each phase."""
        return {
            phase: {
                "is_running": phase in self._running,
                "last_run_time": (
                    self.last_run_time[phase].isoformat() if phase in self.last_run_time else None
                ),
                "last_run_metrics": self.last_metrics.get(phase),
            }
            for phase in PHASES
        }


match_cycle_service = MatchCycleService()
