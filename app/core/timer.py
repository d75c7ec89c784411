"""Server-authoritative exam timer.

Remaining time is derived from two durable facts, the anchor start instant
and the allotted duration, plus the current instant. Nothing else (client
counters, cached values) is consulted.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from app.core.config import settings
from app.core.constants import TimerStatusEnum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; they were written as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_remaining(anchor_start_at: Optional[datetime], allotted_duration_seconds: int, now: datetime) -> int:
    """
    Seconds left for an attempt, clamped to [0, allotted_duration_seconds].

    Elapsed time is floored to whole seconds, so a student is never charged
    for a partial second. An attempt without an anchor has not started and
    keeps its full allotment; a `now` earlier than the anchor (clock skew)
    never grants extra time.
    """
    allotted = max(0, int(allotted_duration_seconds))
    anchor = as_utc(anchor_start_at)
    if anchor is None:
        return allotted

    elapsed = math.floor((as_utc(now) - anchor).total_seconds())
    remaining = allotted - elapsed
    return max(0, min(allotted, remaining))


def timer_status(
    remaining_seconds: int,
    warning_seconds: int = settings.TIMER_WARNING_SECONDS,
    caution_seconds: int = settings.TIMER_CAUTION_SECONDS,
) -> TimerStatusEnum:
    if remaining_seconds <= 0:
        return TimerStatusEnum.EXPIRED
    if remaining_seconds <= warning_seconds:
        return TimerStatusEnum.WARNING
    if remaining_seconds <= caution_seconds:
        return TimerStatusEnum.CAUTION
    return TimerStatusEnum.NORMAL


@dataclass(frozen=True)
class TimerReading:
    remaining_seconds: int
    status: TimerStatusEnum
    server_time: datetime

    @property
    def is_expired(self) -> bool:
        return self.remaining_seconds <= 0


def read_timer(anchor_start_at: Optional[datetime], allotted_duration_seconds: int, now: Optional[datetime] = None) -> TimerReading:
    now = as_utc(now) if now is not None else utcnow()
    remaining = compute_remaining(anchor_start_at, allotted_duration_seconds, now)
    return TimerReading(
        remaining_seconds=remaining,
        status=timer_status(remaining),
        server_time=now,
    )


def closed_reading(now: Optional[datetime] = None) -> TimerReading:
    # A closed attempt has no time left regardless of the clock.
    now = as_utc(now) if now is not None else utcnow()
    return TimerReading(remaining_seconds=0, status=TimerStatusEnum.EXPIRED, server_time=now)
