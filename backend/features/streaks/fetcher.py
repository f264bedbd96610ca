from __future__ import annotations

from typing import List

from pydantic import ValidationError as PydanticValidationError

from backend.core.errors import FetchError
from backend.features.streaks.store import StreakStore
from backend.models.streak import CheckInEvent


class EventFetcher:
    """Reads one user's check-ins and validates them into CheckInEvents."""

    def __init__(self, store: StreakStore):
        self.store = store

    def fetch(self, user_id: str) -> List[CheckInEvent]:
        """
        Return the user's check-in events, unordered. Empty for a user with no history.

        Raises FetchError if the store is unreachable or any timestamp is malformed.
        """
        raw = self.store.list_checkin_timestamps(user_id)
        if raw is None:
            return []
        try:
            return [CheckInEvent(user_id=user_id, occurred_at=value) for value in raw]
        except (PydanticValidationError, TypeError) as exc:
            raise FetchError(f"Malformed check-in timestamp for user {user_id}: {exc}", user_id=user_id) from exc
