"""
Supabase (PostgREST) streak store over httpx.

Uses the service role key, which bypasses row level security; only run server-side.
Reads are paginated with limit/offset so a user's history has no upper bound.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from backend.core.errors import FetchError, NotFoundError, PersistError
from backend.features.streaks.store import parse_date
from backend.models.streak import StreakState

logger = logging.getLogger("healthlog.streaks.supabase")

PAGE_SIZE = 1000


class SupabaseStreakStore:
    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        page_size: int = PAGE_SIZE,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self._api_key = api_key
        self.timeout = timeout
        self.page_size = page_size
        self._transport = transport

    def _client(self) -> httpx.Client:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        return httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _select_all(self, table: str, params: Dict[str, str], *, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        offset = 0
        try:
            with self._client() as client:
                while True:
                    page_params = {**params, "limit": str(self.page_size), "offset": str(offset)}
                    response = client.get(f"/{table}", params=page_params)
                    if response.status_code >= 300:
                        raise FetchError(
                            f"Supabase select on {table} failed: {response.status_code} {response.text}",
                            user_id=user_id,
                        )
                    page = response.json()
                    if not isinstance(page, list):
                        raise FetchError(f"Supabase select on {table} returned a non-list payload", user_id=user_id)
                    rows.extend(page)
                    if len(page) < self.page_size:
                        return rows
                    offset += self.page_size
        except httpx.HTTPError as exc:
            raise FetchError(f"Supabase unreachable: {exc}", user_id=user_id) from exc
        except ValueError as exc:
            raise FetchError(f"Supabase returned invalid JSON: {exc}", user_id=user_id) from exc

    def list_user_ids(self) -> List[str]:
        rows = self._select_all("profiles", {"select": "id", "order": "id.asc"})
        try:
            return [str(row["id"]) for row in rows if row.get("id")]
        except (KeyError, TypeError, AttributeError) as exc:
            raise FetchError(f"Malformed profile row: {exc}") from exc

    def list_checkin_timestamps(self, user_id: str) -> List[object]:
        rows = self._select_all(
            "check_ins",
            {"select": "created_at", "user_id": f"eq.{user_id}", "order": "created_at.desc"},
            user_id=user_id,
        )
        try:
            return [row["created_at"] for row in rows]
        except (KeyError, TypeError) as exc:
            raise FetchError(f"Malformed check-in row: {exc}", user_id=user_id) from exc

    def upsert_streak_state(self, user_id: str, state: StreakState) -> None:
        payload = {
            "streak": state.streak_count,
            "streak_updated_on": state.last_confirmed_date.isoformat() if state.last_confirmed_date else None,
        }
        try:
            with self._client() as client:
                response = client.patch(
                    "/profiles",
                    params={"id": f"eq.{user_id}"},
                    json=payload,
                    headers={"Prefer": "return=representation"},
                )
        except httpx.HTTPError as exc:
            raise PersistError(f"Supabase unreachable: {exc}", user_id=user_id) from exc

        if response.status_code >= 300:
            raise PersistError(
                f"Supabase rejected streak update: {response.status_code} {response.text}",
                user_id=user_id,
            )
        try:
            updated = response.json()
        except ValueError:
            updated = None
        if updated == []:
            raise PersistError("Profile row not found for streak update", user_id=user_id)

    def get_streak_state(self, user_id: str) -> StreakState:
        rows = self._select_all(
            "profiles",
            {"select": "streak,streak_updated_on", "id": f"eq.{user_id}"},
            user_id=user_id,
        )
        if not rows:
            raise NotFoundError(f"Unknown user: {user_id}")
        row = rows[0]
        try:
            return StreakState(
                streak_count=int(row.get("streak") or 0),
                last_confirmed_date=parse_date(row.get("streak_updated_on")),
            )
        except (TypeError, ValueError) as exc:
            raise FetchError(f"Malformed profile row: {exc}", user_id=user_id) from exc

    def check_ready(self) -> bool:
        try:
            with self._client() as client:
                response = client.get("/profiles", params={"select": "id", "limit": "1"})
        except httpx.HTTPError as exc:
            logger.warning(f"[readyz] Supabase unreachable: {exc}")
            return False
        return response.status_code < 300
