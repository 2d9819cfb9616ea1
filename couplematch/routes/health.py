# couplematch/routes/health.py
"""
Health check endpoints for the matching service.
"""

import time

from fastapi import APIRouter, Request

from couplematch.config import settings
from couplematch.db.pool import db_health_check
from couplematch.features.match_cycle.services.cycle_service import match_cycle_service
from couplematch.services.redis_client import fast_redis

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "couplematch"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check covering Redis, the database pool and the weekly scheduler.
    """
    checks = {}
    overall_ok = True

    # 1) Redis
    t0 = time.time()
    try:
        redis_ok = await fast_redis.ping()
        checks["redis"] = {
            "ok": bool(redis_ok),
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = overall_ok and bool(redis_ok)
    except Exception as e:
        checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 2) Database pool
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)
        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        if "pool_stats" in db_health:
            checks["database"]["pool_stats"] = db_health["pool_stats"]
        if "warnings" in db_health:
            checks["database"]["warnings"] = db_health["warnings"]
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
        overall_ok = overall_ok and is_healthy
    except Exception as e:
        checks["database"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 3) Scheduler and phase status
    scheduler = getattr(request.app.state, "scheduler", None)
    if not settings.RUN_SCHEDULER_IN_API:
        # Hosted by the worker process; nothing to check here
        checks["scheduler"] = {"ok": True, "hosted_in": "worker"}
    elif scheduler is None:
        checks["scheduler"] = {"ok": False, "error": "Scheduler not started"}
        overall_ok = False
    else:
        status = scheduler.get_status()
        checks["scheduler"] = {"ok": bool(status["running"]), **status}
        overall_ok = overall_ok and bool(status["running"])

    checks["phases"] = match_cycle_service.get_job_status()
    checks["configuration"] = {
        "environment": settings.environment,
        "timezone": settings.MATCH_TIMEZONE,
        "scheduler_in_api": settings.RUN_SCHEDULER_IN_API,
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
