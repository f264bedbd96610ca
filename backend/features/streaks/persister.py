from __future__ import annotations

import logging

from backend.features.streaks.store import StreakStore
from backend.models.streak import StreakState

logger = logging.getLogger("healthlog.streaks.persister")


class StreakPersister:
    """Overwrites a user's stored streak state. Safe to repeat for the same day."""

    def __init__(self, store: StreakStore, *, dry_run: bool = False):
        self.store = store
        self.dry_run = dry_run

    def persist(self, user_id: str, state: StreakState) -> bool:
        """Write ``state``; returns False when skipped in dry-run mode.

        Store failures surface as PersistError.
        """
        if self.dry_run:
            logger.info(
                "[dry-run] streak not written",
                extra={"user_id": user_id, **state.to_dict()},
            )
            return False
        self.store.upsert_streak_state(user_id, state)
        return True
