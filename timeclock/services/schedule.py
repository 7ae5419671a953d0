from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Literal

from timeclock.errors import ScheduleNotFound
from timeclock.models import Employee, Shift, Weekday

logger = logging.getLogger("timeclock.schedule")

ScheduleSource = Literal["shift", "individual"]


@dataclass(frozen=True)
class ResolvedSchedule:
    is_working_day: bool
    entry_time: time | None
    exit_time: time | None
    lunch_start: time | None = None
    lunch_end: time | None = None
    source: ScheduleSource = "individual"
    shift_id: int | None = None
    shift_name: str | None = None


def minutes_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


def _linked_active_shift(employee: Employee, shift: Shift | None) -> Shift | None:
    if employee.shift_id is None:
        return None
    candidate = shift if shift is not None else employee.shift
    if candidate is None or candidate.id != employee.shift_id:
        return None
    if not candidate.is_active:
        return None
    return candidate


def resolve_schedule(employee: Employee, day: date, *, shift: Shift | None = None) -> ResolvedSchedule:
    """Return the expected schedule of ``employee`` on ``day``.

    An active shift linked to the employee always wins over the individual
    entry/exit fields. ``shift`` may be passed when the caller already loaded
    it (reports load all shifts in one query); otherwise the relationship is
    used.
    """
    linked_shift = _linked_active_shift(employee, shift)
    if linked_shift is None:
        return ResolvedSchedule(
            is_working_day=True,
            entry_time=employee.entry_time,
            exit_time=employee.exit_time,
            lunch_start=employee.lunch_start,
            lunch_end=employee.lunch_end,
            source="individual",
        )

    weekday = Weekday.for_date(day)
    detail = linked_shift.detail_for(weekday)
    if detail is None:
        logger.error(
            "shift_weekday_detail_missing",
            extra={
                "shift_id": linked_shift.id,
                "employee_id": employee.id,
                "weekday": weekday.value,
                "day": day.isoformat(),
            },
        )
        raise ScheduleNotFound(linked_shift.id, weekday.value)

    if not detail.is_working_day:
        return ResolvedSchedule(
            is_working_day=False,
            entry_time=None,
            exit_time=None,
            source="shift",
            shift_id=linked_shift.id,
            shift_name=linked_shift.name,
        )

    return ResolvedSchedule(
        is_working_day=True,
        entry_time=detail.entry_time,
        exit_time=detail.exit_time,
        lunch_start=detail.lunch_start,
        lunch_end=detail.lunch_end,
        source="shift",
        shift_id=linked_shift.id,
        shift_name=linked_shift.name,
    )


def scheduled_work_minutes(schedule: ResolvedSchedule) -> int | None:
    # Gross span, the same basis the journey worked minutes use.
    if not schedule.is_working_day:
        return 0
    if schedule.entry_time is None or schedule.exit_time is None:
        return None
    return max(0, minutes_of_day(schedule.exit_time) - minutes_of_day(schedule.entry_time))
