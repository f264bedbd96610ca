"""
SQL streak store tests (SQLite file database, same code path as PostgreSQL).
"""
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import insert, select
from sqlalchemy.exc import OperationalError

from backend.core.database import check_ins, get_db_session, profiles
from backend.core.errors import FetchError, NotFoundError, PersistError
from backend.features.streaks import store_pg
from backend.features.streaks.coordinator import RunCoordinator
from backend.models.streak import StreakState

TODAY = date(2024, 3, 10)


def _create_profile(user_id: str) -> None:
    with get_db_session() as session:
        session.execute(insert(profiles).values(id=user_id, display_name=user_id.title()))


def _add_checkin(user_id: str, created_at: datetime) -> None:
    with get_db_session() as session:
        session.execute(insert(check_ins).values(user_id=user_id, input_mode="text", created_at=created_at))


def test_lists_profiles_and_checkins(sql_store):
    _create_profile("bob")
    _create_profile("alice")
    _add_checkin("alice", datetime(2024, 3, 9, 8, 0, tzinfo=timezone.utc))
    _add_checkin("alice", datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc))

    assert sql_store.list_user_ids() == ["alice", "bob"]
    assert len(sql_store.list_checkin_timestamps("alice")) == 2
    assert sql_store.list_checkin_timestamps("bob") == []


def test_new_profile_defaults_to_zero_streak(sql_store):
    _create_profile("alice")
    assert sql_store.get_streak_state("alice") == StreakState(0, None)


def test_upsert_overwrites_existing_profile(sql_store):
    _create_profile("alice")
    sql_store.upsert_streak_state("alice", StreakState(4, TODAY))
    sql_store.upsert_streak_state("alice", StreakState(0, TODAY - timedelta(days=2)))

    assert sql_store.get_streak_state("alice") == StreakState(0, TODAY - timedelta(days=2))
    with get_db_session() as session:
        rows = session.execute(select(profiles.c.id, profiles.c.display_name)).fetchall()
    assert [(r.id, r.display_name) for r in rows] == [("alice", "Alice")]


def test_upsert_creates_missing_profile_row(sql_store):
    sql_store.upsert_streak_state("newcomer", StreakState(1, TODAY))
    assert sql_store.get_streak_state("newcomer") == StreakState(1, TODAY)


def test_unknown_profile_not_found(sql_store):
    with pytest.raises(NotFoundError):
        sql_store.get_streak_state("ghost")


def test_full_run_against_sql_store(sql_store):
    for user_id in ("a", "b", "c"):
        _create_profile(user_id)
    for n in range(3):
        _add_checkin("a", datetime(2024, 3, 10 - n, 9, 30, tzinfo=timezone.utc))
    _add_checkin("a", datetime(2024, 3, 10, 18, 0, tzinfo=timezone.utc))
    _add_checkin("b", datetime(2024, 3, 8, 9, 30, tzinfo=timezone.utc))

    summary = RunCoordinator(sql_store).run(TODAY)

    assert summary.exit_code == 0
    assert sql_store.get_streak_state("a") == StreakState(3, TODAY)
    assert sql_store.get_streak_state("b") == StreakState(0, date(2024, 3, 8))
    assert sql_store.get_streak_state("c") == StreakState(0, None)


def test_sql_errors_become_store_errors(sql_store, monkeypatch):
    class BrokenSession:
        def __enter__(self):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        def __exit__(self, *exc):
            return False

    monkeypatch.setattr(store_pg, "get_db_session", lambda: BrokenSession())

    with pytest.raises(FetchError):
        sql_store.list_user_ids()
    with pytest.raises(FetchError) as fetch_exc:
        sql_store.list_checkin_timestamps("a")
    assert fetch_exc.value.user_id == "a"
    with pytest.raises(PersistError) as persist_exc:
        sql_store.upsert_streak_state("a", StreakState(1, TODAY))
    assert persist_exc.value.user_id == "a"


def test_ready_when_tables_exist(sql_store):
    assert sql_store.check_ready() is True
