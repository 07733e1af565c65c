"""System health endpoints."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from sovest.api.deps import app_state, get_registry
from sovest.registry.queries import Registry

router = APIRouter()

_start_time = time.time()


@router.get("/system/health")
def health_check(registry: Registry = Depends(get_registry)) -> dict:
    """System health check.

    Response shape: {status, database, marketData, lastEvaluation, uptime}
    """
    db_ok = registry.health_check()

    last_eval = None
    if db_ok:
        run = registry.get_last_cron_run("evaluate-predictions")
        if run is not None:
            last_eval = {
                "startedAt": str(run["started_at"]),
                "finishedAt": str(run["finished_at"]) if run.get("finished_at") else None,
                "status": run["status"],
            }

    client = app_state.price_client
    return {
        "status": "healthy" if db_ok else "degraded",
        "database": db_ok,
        "marketData": client.is_healthy if client is not None else None,
        "lastEvaluation": last_eval,
        "uptime": int(time.time() - _start_time),
    }
