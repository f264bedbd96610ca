"""
Daily streak updater.

Runs once per day from the scheduler with no arguments: recomputes every
user's streak from raw check-ins as of the reference day and overwrites the
stored value. Exit code is non-zero when any user failed, so the scheduler can
alert; users that succeeded keep their new state.

Flags exist for backfills (``--today``), one-off initialization
(``--policy grace``) and dry runs.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
from datetime import date
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from backend.core.config import Settings, check_streak_settings, load_settings, validate_config
from backend.core.errors import ConfigError, FetchError
from backend.core.logging import configure_logging
from backend.features.streaks.coordinator import RunCoordinator
from backend.features.streaks.normalizer import DateNormalizer
from backend.features.streaks.store import StreakStore, get_streak_store
from backend.models.streak import EXIT_CONFIG_ERROR, EXIT_ENUMERATION_FAILED, RunSummary, StreakPolicy

logger = logging.getLogger("healthlog.workers.update_streaks")


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def run_update(
    store: StreakStore,
    *,
    today: date,
    policy: StreakPolicy = "strict",
    user_ids: Optional[List[str]] = None,
    dry_run: bool = False,
    max_workers: int = 1,
    offset_minutes: int = 0,
) -> RunSummary:
    coordinator = RunCoordinator(
        store,
        policy=policy,
        offset_minutes=offset_minutes,
        max_workers=max_workers,
        dry_run=dry_run,
    )
    return coordinator.run(today, user_ids=user_ids or None)


def build_parser(cfg: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Recompute daily check-in streaks for all users.")
    parser.add_argument("--today", type=_parse_day, help="Reference day (YYYY-MM-DD); defaults to the current day.")
    parser.add_argument("--user-id", dest="user_ids", action="append", help="Only recompute this user (repeatable).")
    parser.add_argument(
        "--policy",
        choices=("strict", "grace"),
        default="strict",
        help="strict: a check-in today is required. grace: yesterday still counts (initialization).",
    )
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="Compute without writing.")
    parser.add_argument("--live", dest="dry_run", action="store_false", help="Write streaks to the store.")
    parser.add_argument("--max-workers", type=int, default=cfg.STREAK_MAX_WORKERS)
    parser.set_defaults(dry_run=_parse_bool(os.getenv("STREAK_DRY_RUN"), cfg.STREAK_DRY_RUN))
    return parser


def main(argv: Optional[Sequence[str]] = None, *, store: Optional[StreakStore] = None) -> int:
    if "PYTEST_CURRENT_TEST" not in os.environ:
        load_dotenv()
    try:
        cfg = load_settings()
    except ConfigError as exc:
        configure_logging(os.getenv("ENV", "development"))
        logger.error(f"Missing or invalid configuration: {exc.message}")
        return EXIT_CONFIG_ERROR
    configure_logging(cfg.ENV)
    args = build_parser(cfg).parse_args(argv)

    try:
        if store is None:
            validate_config(cfg, logger=logger)
            store = get_streak_store(cfg)
        else:
            check_streak_settings(cfg)
        if args.max_workers < 1:
            raise ConfigError("--max-workers must be at least 1")
    except ConfigError as exc:
        logger.error(f"Missing or invalid configuration: {exc.message}")
        return EXIT_CONFIG_ERROR

    today = args.today or DateNormalizer(cfg.STREAK_DAY_OFFSET_MINUTES).today()
    logger.info(f"Running daily streak updater for {today.isoformat()} (policy={args.policy})")

    try:
        summary = run_update(
            store,
            today=today,
            policy=args.policy,
            user_ids=args.user_ids,
            dry_run=args.dry_run,
            max_workers=args.max_workers,
            offset_minutes=cfg.STREAK_DAY_OFFSET_MINUTES,
        )
    except FetchError as exc:
        logger.error(f"Could not list users: {exc.message}")
        return EXIT_ENUMERATION_FAILED

    print(json.dumps(summary.to_dict()))
    if summary.failures:
        logger.warning(f"Streak update finished with {summary.failed} failed user(s): {', '.join(summary.failed_user_ids)}")
    else:
        logger.info("Daily streaks updated successfully.")
    return summary.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
