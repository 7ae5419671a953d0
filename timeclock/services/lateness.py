from __future__ import annotations

from dataclasses import dataclass
from datetime import time

from timeclock.services.schedule import minutes_of_day


@dataclass(frozen=True)
class LatenessResult:
    late: bool
    minutes_late: int


ON_TIME = LatenessResult(late=False, minutes_late=0)


def evaluate_lateness(
    actual_time: time,
    scheduled_entry: time | None,
    *,
    tolerance_minutes: int,
) -> LatenessResult:
    if scheduled_entry is None:
        return ON_TIME
    tolerance = max(0, int(tolerance_minutes))
    diff = minutes_of_day(actual_time) - minutes_of_day(scheduled_entry)
    if diff <= tolerance:
        return ON_TIME
    return LatenessResult(late=True, minutes_late=diff - tolerance)
