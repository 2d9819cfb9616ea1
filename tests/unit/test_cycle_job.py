import pytest

from couplematch.features.match_cycle.jobs import cycle_job
from couplematch.features.match_cycle.services.cycle_service import MatchCycleService
from couplematch.features.match_cycle.services.scheduler import ScheduleConfigError


def test_build_cycle_scheduler_registers_three_phases(stores):
    users, matches, notifier = stores()
    service = MatchCycleService(
        user_repository=users, match_repository=matches, notifier=notifier
    )

    scheduler = cycle_job.build_cycle_scheduler(service)

    assert [job.name for job in scheduler.jobs] == ["match_create", "match_reveal", "match_reset"]
    assert [job.trigger.describe() for job in scheduler.jobs] == [
        "tue 23:01",
        "thu 00:00",
        "thu 00:01",
    ]


def test_build_cycle_scheduler_rejects_bad_calendar(monkeypatch, stores):
    users, matches, notifier = stores()
    service = MatchCycleService(
        user_repository=users, match_repository=matches, notifier=notifier
    )
    monkeypatch.setattr(cycle_job.settings, "MATCH_RESET_SCHEDULE", "59 23 * * 3")

    with pytest.raises(ScheduleConfigError):
        cycle_job.build_cycle_scheduler(service)
