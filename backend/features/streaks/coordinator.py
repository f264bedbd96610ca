"""
Daily streak run: recompute every user's streak from raw check-ins.

State machine: idle -> fetching_users -> processing_users ->
completed | completed_with_errors. Per-user failures are recorded and never
abort the loop; users already written keep their new state.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Tuple
from uuid import uuid4

from backend.core.errors import AppError, FetchError, PersistError
from backend.core.logging import log_event, run_id_ctx_var
from backend.core.metrics import (
    streak_last_run_duration_seconds,
    streak_last_run_failed_users,
    streak_runs_total,
    streak_users_processed_total,
)
from backend.features.streaks.calculator import StreakCalculator
from backend.features.streaks.fetcher import EventFetcher
from backend.features.streaks.normalizer import DateNormalizer
from backend.features.streaks.persister import StreakPersister
from backend.features.streaks.store import StreakStore
from backend.models.streak import RunStatus, RunSummary, StreakPolicy, StreakState, UserFailure

LOGGER_NAME = "healthlog.streaks.run"

logger = logging.getLogger(LOGGER_NAME)


class RunCoordinator:
    def __init__(
        self,
        store: StreakStore,
        *,
        policy: StreakPolicy = "strict",
        offset_minutes: int = 0,
        max_workers: int = 1,
        dry_run: bool = False,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.store = store
        self.fetcher = EventFetcher(store)
        self.normalizer = DateNormalizer(offset_minutes)
        self.calculator = StreakCalculator(policy)
        self.persister = StreakPersister(store, dry_run=dry_run)
        self.policy = policy
        self.max_workers = max_workers
        self.dry_run = dry_run
        self.status: RunStatus = "idle"

    def process_user(self, user_id: str, today: date) -> StreakState:
        """Fetch, normalize, calculate and persist one user's streak."""
        events = self.fetcher.fetch(user_id)
        days = self.normalizer.normalize(events)
        state = self.calculator.calculate(days, today)
        self.persister.persist(user_id, state)
        return state

    def run(self, today: date, user_ids: Optional[Iterable[str]] = None) -> RunSummary:
        """
        Recompute streaks for every known user (or only ``user_ids``) as of ``today``.

        Raises FetchError when the user list itself cannot be read; that is the
        only failure that stops a run before any user is processed.
        """
        summary = RunSummary(
            run_id=uuid4().hex[:12],
            today=today,
            policy=self.policy,
            dry_run=self.dry_run,
            started_at=datetime.now(timezone.utc),
        )
        token = run_id_ctx_var.set(summary.run_id)
        start = time.perf_counter()
        try:
            self._set_status(summary, "fetching_users")
            snapshot = list(user_ids) if user_ids is not None else self.store.list_user_ids()
            summary.total_users = len(snapshot)
            log_event(
                "info",
                "streak.run.started",
                event_type="streak.run",
                extra={"today": today.isoformat(), "users": len(snapshot), "policy": self.policy, "dry_run": self.dry_run},
                logger_name=LOGGER_NAME,
            )

            self._set_status(summary, "processing_users")
            for user_id, state, failure in self._process_all(snapshot, today):
                if failure is None:
                    summary.succeeded += 1
                    streak_users_processed_total.inc(labels={"outcome": "success"})
                else:
                    summary.failures.append(failure)
                    streak_users_processed_total.inc(labels={"outcome": "failure"})

            self._set_status(summary, "completed_with_errors" if summary.failures else "completed")
        except FetchError:
            logger.error("streak.run.aborted: could not list users", exc_info=True)
            streak_runs_total.inc(labels={"status": "aborted"})
            raise
        finally:
            summary.finished_at = datetime.now(timezone.utc)
            streak_last_run_duration_seconds.set(time.perf_counter() - start)
            run_id_ctx_var.reset(token)

        streak_runs_total.inc(labels={"status": summary.status})
        streak_last_run_failed_users.set(summary.failed)
        logger.log(
            logging.WARNING if summary.failures else logging.INFO,
            f"streak.run.finished succeeded={summary.succeeded} failed={summary.failed}",
            extra={"run_id": summary.run_id, "status": summary.status},
        )
        return summary

    # Internal helpers -------------------------------------------------
    def _process_all(self, user_ids: List[str], today: date):
        if self.max_workers == 1:
            for user_id in user_ids:
                yield self._process_isolated(user_id, today)
            return

        run_id = run_id_ctx_var.get()
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="streaks") as pool:
            futures = [pool.submit(self._process_in_worker, run_id, user_id, today) for user_id in user_ids]
            for future in as_completed(futures):
                yield future.result()

    def _process_in_worker(self, run_id: Optional[str], user_id: str, today: date):
        token = run_id_ctx_var.set(run_id)
        try:
            return self._process_isolated(user_id, today)
        finally:
            run_id_ctx_var.reset(token)

    def _process_isolated(self, user_id: str, today: date) -> Tuple[str, Optional[StreakState], Optional[UserFailure]]:
        try:
            state = self.process_user(user_id, today)
        except AppError as exc:
            return user_id, None, self._record_failure(user_id, _stage_for(exc), exc.code, exc.message)
        except Exception as exc:
            logger.exception("streak.user.unexpected_error", extra={"user_id": user_id})
            return user_id, None, self._record_failure(user_id, "compute", "internal_error", str(exc))

        log_event(
            "info",
            "streak.user.updated",
            user_id=user_id,
            event_type="streak.user",
            extra=state.to_dict(),
            logger_name=LOGGER_NAME,
        )
        return user_id, state, None

    def _record_failure(self, user_id: str, stage: str, code: str, message: str) -> UserFailure:
        log_event(
            "error",
            "streak.user.failed",
            user_id=user_id,
            event_type="streak.user",
            error_code=code,
            extra={"stage": stage, "error_message": message},
            logger_name=LOGGER_NAME,
        )
        return UserFailure(user_id=user_id, stage=stage, error_code=code, message=message)

    def _set_status(self, summary: RunSummary, status: RunStatus) -> None:
        self.status = status
        summary.status = status


def _stage_for(exc: AppError) -> str:
    if isinstance(exc, FetchError):
        return "fetch"
    if isinstance(exc, PersistError):
        return "persist"
    return "compute"
