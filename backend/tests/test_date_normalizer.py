from datetime import date, datetime, timedelta, timezone

import pytest

from backend.features.streaks.normalizer import DateNormalizer, normalize_days
from backend.models.streak import CheckInEvent


def test_same_day_timestamps_collapse_to_one_key():
    days = normalize_days([
        datetime(2024, 3, 10, 0, 5, tzinfo=timezone.utc),
        datetime(2024, 3, 10, 23, 59, tzinfo=timezone.utc),
    ])
    assert days == frozenset({date(2024, 3, 10)})


def test_naive_timestamps_are_read_as_utc():
    assert DateNormalizer().day_key(datetime(2024, 3, 10, 23, 30)) == date(2024, 3, 10)


def test_offset_timestamps_are_converted_to_reference_frame():
    plus_five = timezone(timedelta(hours=5))
    # 02:00 at +05:00 is 21:00 UTC the previous day
    assert DateNormalizer().day_key(datetime(2024, 3, 11, 2, 0, tzinfo=plus_five)) == date(2024, 3, 10)


def test_single_global_offset_applies_to_everyone():
    normalizer = DateNormalizer(offset_minutes=-300)
    ts = datetime(2024, 3, 11, 3, 0, tzinfo=timezone.utc)
    assert normalizer.day_key(ts) == date(2024, 3, 10)


def test_accepts_checkin_events():
    event = CheckInEvent(user_id="u1", occurred_at=datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc))
    assert DateNormalizer().normalize([event]) == frozenset({date(2024, 3, 10)})


def test_today_uses_injected_clock():
    now = datetime(2024, 3, 10, 23, 59, 59, tzinfo=timezone.utc)
    assert DateNormalizer().today(now) == date(2024, 3, 10)


def test_offset_must_be_within_a_day():
    with pytest.raises(ValueError):
        DateNormalizer(offset_minutes=24 * 60)
