import pytest

from couplematch.jobs import worker


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_registry_has_cycle_jobs():
    expected = {"match_scheduler", "match_create", "match_reveal", "match_reset", "match_schema"}

    assert expected <= set(worker.JOB_REGISTRY)


def test_job_name_from_env(monkeypatch):
    monkeypatch.setattr(worker.sys, "argv", ["couplematch-worker"])
    monkeypatch.setenv("WORKER_JOB", " Match_Reveal ")

    assert worker._resolve_job_name() == "match_reveal"
