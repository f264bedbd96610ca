"""
backend/features/streaks/store.py

Store abstraction used by the streak job: list users, list a user's check-in
timestamps, read and overwrite the user's streak state.

Implementations:
- InMemoryStreakStore (tests, local runs)
- PostgresStreakStore (store_pg.py, any SQLAlchemy URL)
- SupabaseStreakStore (store_supabase.py, PostgREST over httpx)
"""
from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Protocol

from backend.core.config import Settings, resolve_store_backend, settings
from backend.core.errors import NotFoundError
from backend.models.streak import StreakState

logger = logging.getLogger("healthlog.streaks.store")


class StreakStore(Protocol):
    def list_user_ids(self) -> List[str]: ...

    def list_checkin_timestamps(self, user_id: str) -> List[object]:
        """Raw ``occurred_at`` values for one user; parsing happens in the fetcher."""
        ...

    def upsert_streak_state(self, user_id: str, state: StreakState) -> None: ...

    def get_streak_state(self, user_id: str) -> StreakState: ...

    def check_ready(self) -> bool: ...


class InMemoryStreakStore:
    """Thread-safe in-memory store with the same contract as the durable stores."""

    def __init__(self):
        self._profiles: Dict[str, StreakState] = {}
        self._checkins: Dict[str, List[object]] = {}
        self._lock = threading.Lock()

    # Seeding helpers -------------------------------------------------
    def add_user(self, user_id: str) -> None:
        with self._lock:
            self._profiles.setdefault(user_id, StreakState())

    def add_checkin(self, user_id: str, occurred_at: datetime | str) -> None:
        with self._lock:
            self._profiles.setdefault(user_id, StreakState())
            self._checkins.setdefault(user_id, []).append(occurred_at)

    def add_checkins(self, user_id: str, timestamps: Iterable[datetime | str]) -> None:
        for ts in timestamps:
            self.add_checkin(user_id, ts)

    # StreakStore -----------------------------------------------------
    def list_user_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._profiles)

    def list_checkin_timestamps(self, user_id: str) -> List[object]:
        with self._lock:
            return list(self._checkins.get(user_id, []))

    def upsert_streak_state(self, user_id: str, state: StreakState) -> None:
        with self._lock:
            self._profiles[user_id] = state

    def get_streak_state(self, user_id: str) -> StreakState:
        with self._lock:
            if user_id not in self._profiles:
                raise NotFoundError(f"Unknown user: {user_id}")
            return self._profiles[user_id]

    def check_ready(self) -> bool:
        return True


def parse_date(value: object) -> Optional[date]:
    """Coerce a stored ``streak_updated_on`` value into a date."""
    if value is None or (isinstance(value, date) and not isinstance(value, datetime)):
        return value
    if isinstance(value, datetime):
        return value.date()
    return date.fromisoformat(str(value)[:10])


def get_streak_store(settings_obj: Optional[Settings] = None) -> StreakStore:
    """
    Build the store for the configured backend.

    Raises ConfigError when the backend's credentials are missing.
    """
    cfg = settings_obj or settings
    backend = resolve_store_backend(cfg)

    if backend == "supabase":
        from backend.features.streaks.store_supabase import SupabaseStreakStore

        return SupabaseStreakStore(
            cfg.supabase_url,
            cfg.supabase_key,
            timeout=cfg.STREAK_STORE_TIMEOUT_SECONDS,
        )
    if backend == "postgres":
        from backend.features.streaks.store_pg import PostgresStreakStore

        return PostgresStreakStore(database_url=cfg.DATABASE_URL)

    logger.warning("Using in-memory streak store; state will not survive the process")
    return InMemoryStreakStore()


# Global store instance (lazy initialization)
_store_instance: Optional[StreakStore] = None


def get_store() -> StreakStore:
    """Singleton store used by the API."""
    global _store_instance
    if _store_instance is None:
        _store_instance = get_streak_store()
    return _store_instance


def reset_store() -> None:
    """
    Reset the store instance.

    FOR TESTING ONLY - forces re-initialization on next get_store() call.
    """
    global _store_instance
    _store_instance = None
