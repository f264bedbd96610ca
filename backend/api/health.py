"""
Health endpoints: liveness and store readiness. No secrets are exposed.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from backend.api.streaks import streak_store_dependency
from backend.features.streaks.store import StreakStore

logger = logging.getLogger("healthlog")

root_router = APIRouter(tags=["health"])


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz(store: StreakStore = Depends(streak_store_dependency)):
    """Readiness check: the configured streak store answers and has its tables."""
    try:
        ready = store.check_ready()
    except Exception as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "store unreachable"})

    if not ready:
        logger.warning("[readyz] store not ready")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "store not ready"})
    return {"status": "ok"}
