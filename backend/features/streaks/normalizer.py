"""
Calendar-day normalization for check-in timestamps.

All users and all timestamps share one reference frame (UTC by default, or a
single fixed offset). A user whose local midnight sits on the other side of the
reference boundary can see a local check-in land on a neighbouring day; per-user
timezones are intentionally not applied here.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import FrozenSet, Iterable, Optional, Union

from backend.models.streak import CheckInEvent

Timestampish = Union[datetime, CheckInEvent]


class DateNormalizer:
    def __init__(self, offset_minutes: int = 0):
        if abs(offset_minutes) >= 24 * 60:
            raise ValueError("offset_minutes must be within one day")
        self.offset = timedelta(minutes=offset_minutes)
        self._tz = timezone(self.offset)

    def day_key(self, occurred_at: Timestampish) -> date:
        moment = occurred_at.occurred_at if isinstance(occurred_at, CheckInEvent) else occurred_at
        aware = moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)
        return aware.astimezone(self._tz).date()

    def normalize(self, timestamps: Iterable[Timestampish]) -> FrozenSet[date]:
        """Collapse timestamps into the set of calendar days they fall on."""
        return frozenset(self.day_key(ts) for ts in timestamps)

    def today(self, now: Optional[datetime] = None) -> date:
        """Reference day for a run started at ``now`` (wall clock when omitted).

        Called at the edges (worker, API); the calculator only ever sees the result.
        """
        return self.day_key(now or datetime.now(timezone.utc))


def normalize_days(timestamps: Iterable[Timestampish], offset_minutes: int = 0) -> FrozenSet[date]:
    return DateNormalizer(offset_minutes).normalize(timestamps)
