from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from backend.core.config import check_streak_settings, settings
from backend.features.streaks.coordinator import RunCoordinator
from backend.features.streaks.normalizer import DateNormalizer
from backend.features.streaks.store import StreakStore, get_store
from backend.models.streak import StreakPolicy

router = APIRouter()


class RecomputeRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    today: Optional[date] = None
    policy: StreakPolicy = "strict"


def streak_store_dependency() -> StreakStore:
    """FastAPI provider for the configured store; tests override it."""
    return get_store()


@router.get("/v1/streaks/current")
def get_current_streak(user_id: str = Query(..., min_length=1), store: StreakStore = Depends(streak_store_dependency)):
    """Return the persisted streak state for a user (as of the last run)."""
    state = store.get_streak_state(user_id)
    return {"user_id": user_id, **state.to_dict()}


@router.post("/v1/streaks/recompute")
def recompute_streak(body: RecomputeRequest, store: StreakStore = Depends(streak_store_dependency)):
    """Recompute and persist one user's streak, e.g. after a late backfill of check-ins."""
    check_streak_settings(settings)
    offset = settings.STREAK_DAY_OFFSET_MINUTES
    today = body.today or DateNormalizer(offset).today()
    coordinator = RunCoordinator(store, policy=body.policy, offset_minutes=offset)
    state = coordinator.process_user(body.user_id, today)
    return {
        "user_id": body.user_id,
        "today": today.isoformat(),
        "policy": body.policy,
        **state.to_dict(),
    }
