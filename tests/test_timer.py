from datetime import datetime, timedelta, timezone

import pytest

from app.core.constants import TimerStatusEnum
from app.core.timer import closed_reading, compute_remaining, read_timer, timer_status

T = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


def test_remaining_before_expiry_is_warning():
    reading = read_timer(T, 1800, T + timedelta(seconds=1790))
    assert reading.remaining_seconds == 10
    assert reading.status == TimerStatusEnum.WARNING
    assert not reading.is_expired


def test_remaining_after_expiry_clamps_to_zero():
    reading = read_timer(T, 1800, T + timedelta(seconds=1805))
    assert reading.remaining_seconds == 0
    assert reading.status == TimerStatusEnum.EXPIRED
    assert reading.is_expired


def test_remaining_never_exceeds_allotment_when_clock_is_behind_anchor():
    assert compute_remaining(T, 1800, T - timedelta(minutes=5)) == 1800


def test_unstarted_attempt_reports_full_allotment():
    assert compute_remaining(None, 1800, T) == 1800


def test_partial_seconds_are_not_charged():
    assert compute_remaining(T, 1800, T + timedelta(milliseconds=900)) == 1800
    assert compute_remaining(T, 1800, T + timedelta(seconds=1, milliseconds=999)) == 1799


def test_naive_anchor_is_read_as_utc():
    naive_anchor = T.replace(tzinfo=None)
    assert compute_remaining(naive_anchor, 600, T + timedelta(seconds=60)) == 540


def test_remaining_is_monotonic_as_time_advances():
    readings = [compute_remaining(T, 900, T + timedelta(seconds=s)) for s in range(0, 1000, 7)]
    assert all(later <= earlier for earlier, later in zip(readings, readings[1:]))
    assert all(0 <= r <= 900 for r in readings)


@pytest.mark.parametrize("remaining,expected", [
    (3600, TimerStatusEnum.NORMAL),
    (601, TimerStatusEnum.NORMAL),
    (600, TimerStatusEnum.CAUTION),
    (301, TimerStatusEnum.CAUTION),
    (300, TimerStatusEnum.WARNING),
    (1, TimerStatusEnum.WARNING),
    (0, TimerStatusEnum.EXPIRED),
])
def test_timer_status_thresholds(remaining, expected):
    assert timer_status(remaining) == expected


def test_closed_reading_has_no_time_left():
    reading = closed_reading(T)
    assert reading.remaining_seconds == 0
    assert reading.status == TimerStatusEnum.EXPIRED
    assert reading.server_time == T
