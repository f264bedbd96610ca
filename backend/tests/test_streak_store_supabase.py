"""
Supabase (PostgREST) store tests against an httpx MockTransport.
"""
import json
from datetime import date

import httpx
import pytest

from backend.core.errors import FetchError, NotFoundError, PersistError
from backend.features.streaks.coordinator import RunCoordinator
from backend.features.streaks.store_supabase import SupabaseStreakStore
from backend.models.streak import StreakState

TODAY = date(2024, 3, 10)


class FakePostgrest:
    """Minimal PostgREST: profiles + check_ins with eq filters and limit/offset."""

    def __init__(self, profiles, checkins, *, fail_checkins_for=()):
        self.profiles = {p["id"]: dict(p) for p in profiles}
        self.checkins = checkins
        self.fail_checkins_for = set(fail_checkins_for)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.headers["apikey"] == "service-key"
        params = request.url.params
        table = request.url.path.rsplit("/", 1)[-1]

        if request.method == "PATCH":
            user_id = params["id"].removeprefix("eq.")
            if user_id not in self.profiles:
                return httpx.Response(200, json=[])
            self.profiles[user_id].update(json.loads(request.content))
            return httpx.Response(200, json=[self.profiles[user_id]])

        if table == "profiles":
            rows = sorted(self.profiles.values(), key=lambda p: p["id"])
            if "id" in params:
                rows = [r for r in rows if r["id"] == params["id"].removeprefix("eq.")]
        else:
            user_id = params["user_id"].removeprefix("eq.")
            if user_id in self.fail_checkins_for:
                return httpx.Response(503, text="upstream timeout")
            rows = [{"created_at": c["created_at"]} for c in self.checkins if c["user_id"] == user_id]

        offset = int(params.get("offset", 0))
        limit = int(params.get("limit", len(rows)))
        return httpx.Response(200, json=rows[offset:offset + limit])


def make_store(fake, page_size=1000):
    return SupabaseStreakStore(
        "https://example.supabase.co/",
        "service-key",
        page_size=page_size,
        transport=httpx.MockTransport(fake),
    )


def test_lists_users_across_pages():
    fake = FakePostgrest([{"id": f"user-{i:02d}", "streak": 0} for i in range(5)], [])
    store = make_store(fake, page_size=2)

    assert store.list_user_ids() == [f"user-{i:02d}" for i in range(5)]
    # 2 + 2 + 1 rows -> three pages
    assert len(fake.requests) == 3
    assert fake.requests[0].url.path == "/rest/v1/profiles"


def test_lists_checkin_timestamps_for_one_user():
    fake = FakePostgrest(
        [{"id": "a"}],
        [
            {"user_id": "a", "created_at": "2024-03-10T07:00:00+00:00"},
            {"user_id": "a", "created_at": "2024-03-09T07:00:00+00:00"},
            {"user_id": "b", "created_at": "2024-03-10T07:00:00+00:00"},
        ],
    )
    store = make_store(fake)

    assert store.list_checkin_timestamps("a") == ["2024-03-10T07:00:00+00:00", "2024-03-09T07:00:00+00:00"]
    assert fake.requests[-1].url.params["order"] == "created_at.desc"


def test_error_status_is_fetch_error():
    fake = FakePostgrest([{"id": "a"}], [], fail_checkins_for={"a"})
    with pytest.raises(FetchError) as excinfo:
        make_store(fake).list_checkin_timestamps("a")
    assert excinfo.value.user_id == "a"


def test_network_error_is_fetch_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    store = SupabaseStreakStore("https://example.supabase.co", "service-key", transport=httpx.MockTransport(refuse))
    with pytest.raises(FetchError):
        store.list_user_ids()
    assert store.check_ready() is False


def test_patch_writes_streak_columns():
    fake = FakePostgrest([{"id": "a", "streak": 7, "streak_updated_on": "2024-03-01"}], [])
    store = make_store(fake)

    store.upsert_streak_state("a", StreakState(0, date(2024, 3, 8)))

    assert fake.profiles["a"]["streak"] == 0
    assert fake.profiles["a"]["streak_updated_on"] == "2024-03-08"
    assert store.get_streak_state("a") == StreakState(0, date(2024, 3, 8))


def test_patch_on_missing_profile_is_persist_error():
    store = make_store(FakePostgrest([], []))
    with pytest.raises(PersistError):
        store.upsert_streak_state("ghost", StreakState(1, TODAY))


def test_rejected_write_is_persist_error():
    def reject(request):
        return httpx.Response(401, json={"message": "invalid JWT"})

    store = SupabaseStreakStore("https://example.supabase.co", "service-key", transport=httpx.MockTransport(reject))
    with pytest.raises(PersistError):
        store.upsert_streak_state("a", StreakState(1, TODAY))


def test_unknown_profile_not_found():
    with pytest.raises(NotFoundError):
        make_store(FakePostgrest([], [])).get_streak_state("ghost")


def test_partial_failure_run_over_supabase():
    fake = FakePostgrest(
        [{"id": "a"}, {"id": "b"}, {"id": "c"}],
        [
            {"user_id": "a", "created_at": "2024-03-10T07:00:00Z"},
            {"user_id": "a", "created_at": "2024-03-09T22:00:00Z"},
            {"user_id": "b", "created_at": "2024-03-10T07:00:00Z"},
            {"user_id": "c", "created_at": "2024-03-10T01:00:00Z"},
            {"user_id": "c", "created_at": "2024-03-10T23:00:00Z"},
        ],
        fail_checkins_for={"b"},
    )

    summary = RunCoordinator(make_store(fake)).run(TODAY)

    assert summary.failed_user_ids == ["b"]
    assert summary.exit_code != 0
    assert fake.profiles["a"]["streak"] == 2
    assert fake.profiles["c"]["streak"] == 1
    assert fake.profiles["c"]["streak_updated_on"] == "2024-03-10"
    assert "streak" not in fake.profiles["b"]
