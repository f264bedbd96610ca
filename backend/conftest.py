# backend/conftest.py
import sys
import pytest
from pathlib import Path

# Add project root to PYTHONPATH so `backend.*` imports work without install
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(autouse=True)
def isolate_store_env(monkeypatch):
    """
    Keep developer credentials out of tests.

    Every test starts with no store credentials and the in-memory backend;
    tests that need another backend set it explicitly.
    """
    for var in (
        "DATABASE_URL",
        "TEST_DATABASE_URL",
        "SUPABASE_URL",
        "NEXT_PUBLIC_SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
        "SUPABASE_ANON_KEY",
        "STREAK_DRY_RUN",
        "STREAK_MAX_WORKERS",
        "STREAK_DAY_OFFSET_MINUTES",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STREAK_STORE", "memory")
    yield


@pytest.fixture(autouse=True)
def reset_metrics_and_store():
    """Each test sees fresh counters and a fresh store singleton."""
    from backend.core.metrics import METRICS
    from backend.features.streaks.store import reset_store

    METRICS.reset()
    reset_store()
    yield
    METRICS.reset()
    reset_store()


@pytest.fixture
def memory_store():
    from backend.features.streaks.store import InMemoryStreakStore

    return InMemoryStreakStore()


@pytest.fixture
def sql_store(tmp_path):
    """
    SQL streak store on a throwaway SQLite file.

    Same code path as production PostgreSQL; tables are created fresh per test.
    """
    from backend.core.database import create_all_tables, init_engine, reset_engine
    from backend.features.streaks.store_pg import PostgresStreakStore

    init_engine(f"sqlite:///{tmp_path / 'streaks.db'}")
    create_all_tables()
    yield PostgresStreakStore()
    reset_engine()
