from __future__ import annotations

from datetime import date, timedelta
from typing import AbstractSet, Iterator, Optional

from backend.models.streak import StreakPolicy, StreakState

ONE_DAY = timedelta(days=1)
POLICIES = ("strict", "grace")


def iter_consecutive_days(days: AbstractSet[date], anchor: date) -> Iterator[date]:
    """Yield ``anchor, anchor - 1, ...`` while each day is present in ``days``.

    Stops at the first missing day, so the walk is as long as the streak, not the history.
    """
    cursor = anchor
    while cursor in days:
        yield cursor
        if cursor == date.min:
            return
        cursor -= ONE_DAY


def count_consecutive_days(days: AbstractSet[date], anchor: date) -> int:
    return sum(1 for _ in iter_consecutive_days(days, anchor))


class StreakCalculator:
    """Deterministic streak computation anchored at an explicit reference day.

    ``strict`` (the nightly run) requires a check-in on ``today``; missing it
    resets the streak to 0. ``grace`` is used when initializing streaks mid-day:
    a check-in yesterday still counts as an unbroken streak ending yesterday.

    Days after ``today`` are invisible to the calculation, including the
    ``last_confirmed_date`` reported when the streak is broken.
    """

    def __init__(self, policy: StreakPolicy = "strict"):
        if policy not in POLICIES:
            raise ValueError(f"Unknown streak policy: {policy!r}")
        self.policy = policy

    def calculate(self, days: AbstractSet[date], today: date) -> StreakState:
        # Days after the reference day are not visible to a run for that day
        visible = days if not days or max(days) <= today else frozenset(d for d in days if d <= today)

        if today in visible:
            return StreakState(
                streak_count=count_consecutive_days(visible, today),
                last_confirmed_date=today,
            )

        if self.policy == "grace" and today != date.min:
            yesterday = today - ONE_DAY
            if yesterday in visible:
                return StreakState(
                    streak_count=count_consecutive_days(visible, yesterday),
                    last_confirmed_date=yesterday,
                )

        return StreakState(streak_count=0, last_confirmed_date=_latest(visible))


def _latest(days: AbstractSet[date]) -> Optional[date]:
    return max(days) if days else None


def compute_streak(days: AbstractSet[date], today: date, *, policy: StreakPolicy = "strict") -> StreakState:
    return StreakCalculator(policy).calculate(days, today)
