from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import Literal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from timeclock.errors import ApiError
from timeclock.models import AttendanceRecord, AttendanceType, CaptureMethod, Employee, Shift
from timeclock.services.lateness import evaluate_lateness
from timeclock.services.schedule import ResolvedSchedule, minutes_of_day, resolve_schedule, scheduled_work_minutes

logger = logging.getLogger("timeclock.journeys")

JourneyStatus = Literal["COMPLETE", "OPEN", "ABSENT", "OFF"]

FLAG_EXIT_BEFORE_ENTRY = "EXIT_BEFORE_ENTRY"
FLAG_DEFAULT_SCHEDULE_ASSUMED = "DEFAULT_SCHEDULE_ASSUMED"

MAX_RANGE_DAYS = 366


@dataclass(frozen=True)
class LateEntry:
    record_time: time
    minutes_late: int


@dataclass(frozen=True)
class Journey:
    employee_id: int
    employee_name: str
    cedula: str
    position: str | None
    department: str | None
    day: date
    status: JourneyStatus
    is_working_day: bool
    entry_time: time | None
    exit_time: time | None
    arrival_time: time | None
    method: CaptureMethod | None
    is_late: bool
    minutes_late: int
    worked_minutes: int
    scheduled_minutes: int
    overtime_minutes: int
    completed_pairs: int
    scheduled_entry_time: time | None
    scheduled_exit_time: time | None
    flags: tuple[str, ...] = ()
    late_entries: tuple[LateEntry, ...] = ()

    @property
    def attended(self) -> bool:
        return self.entry_time is not None


@dataclass(frozen=True)
class _Pairing:
    entry: AttendanceRecord | None
    exit: AttendanceRecord | None
    completed_pairs: int


def iter_days(start_date: date, end_date: date) -> Iterable[date]:
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def validate_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="endDate must be on or after startDate.",
        )
    if (end_date - start_date).days + 1 > MAX_RANGE_DAYS:
        raise ApiError(
            status_code=422,
            code="DATE_RANGE_TOO_LARGE",
            message=f"Date range cannot exceed {MAX_RANGE_DAYS} days.",
        )


def _first_of_type(records: Sequence[AttendanceRecord], record_type: AttendanceType) -> AttendanceRecord | None:
    for record in records:
        if record.type == record_type:
            return record
    return None


def pair_strict(records: Sequence[AttendanceRecord]) -> _Pairing:
    entry = _first_of_type(records, AttendanceType.ENTRY)
    exit_record = _first_of_type(records, AttendanceType.EXIT)
    if entry is None:
        return _Pairing(entry=None, exit=None, completed_pairs=0)
    completed = 1 if exit_record is not None else 0
    return _Pairing(entry=entry, exit=exit_record, completed_pairs=completed)


def pair_flexible(records: Sequence[AttendanceRecord]) -> _Pairing:
    open_entry: AttendanceRecord | None = None
    last_pair: tuple[AttendanceRecord, AttendanceRecord] | None = None
    completed = 0
    for record in records:
        if record.type == AttendanceType.ENTRY:
            if open_entry is None:
                open_entry = record
        elif open_entry is not None:
            last_pair = (open_entry, record)
            completed += 1
            open_entry = None

    if last_pair is not None:
        return _Pairing(entry=last_pair[0], exit=last_pair[1], completed_pairs=completed)
    first_entry = _first_of_type(records, AttendanceType.ENTRY)
    return _Pairing(entry=first_entry, exit=None, completed_pairs=0)


def _minutes_late(
    entry: AttendanceRecord | None,
    schedule: ResolvedSchedule,
    tolerance_minutes: int,
) -> int:
    if entry is None or not entry.is_late:
        return 0
    return evaluate_lateness(
        entry.record_time,
        schedule.entry_time,
        tolerance_minutes=tolerance_minutes,
    ).minutes_late


def build_journey(
    employee: Employee,
    day: date,
    records: Sequence[AttendanceRecord],
    *,
    allow_multiple: bool,
    tolerance_minutes: int,
    default_scheduled_minutes: int,
) -> Journey:
    schedule = resolve_schedule(employee, day)
    flags: list[str] = []

    scheduled = scheduled_work_minutes(schedule)
    if scheduled is None:
        scheduled = default_scheduled_minutes
        flags.append(FLAG_DEFAULT_SCHEDULE_ASSUMED)

    pairing = pair_flexible(records) if allow_multiple else pair_strict(records)
    first_entry = _first_of_type(records, AttendanceType.ENTRY)
    if allow_multiple:
        entries = [record for record in records if record.type == AttendanceType.ENTRY]
    else:
        entries = [first_entry] if first_entry is not None else []
    late_entries = tuple(
        LateEntry(record.record_time, _minutes_late(record, schedule, tolerance_minutes))
        for record in entries
        if record.is_late
    )

    worked = 0
    overtime = 0
    if pairing.entry is None:
        status: JourneyStatus = "ABSENT" if schedule.is_working_day else "OFF"
    elif pairing.exit is None:
        status = "OPEN"
    else:
        status = "COMPLETE"
        worked = minutes_of_day(pairing.exit.record_time) - minutes_of_day(pairing.entry.record_time)
        if worked < 0:
            logger.warning(
                "journey_exit_before_entry",
                extra={
                    "employee_id": employee.id,
                    "day": day.isoformat(),
                    "entry_time": pairing.entry.record_time.isoformat(),
                    "exit_time": pairing.exit.record_time.isoformat(),
                },
            )
            flags.append(FLAG_EXIT_BEFORE_ENTRY)
            worked = 0
        overtime = max(0, worked - scheduled)

    return Journey(
        employee_id=employee.id,
        employee_name=employee.full_name,
        cedula=employee.cedula,
        position=employee.position,
        department=employee.department,
        day=day,
        status=status,
        is_working_day=schedule.is_working_day,
        entry_time=pairing.entry.record_time if pairing.entry is not None else None,
        exit_time=pairing.exit.record_time if pairing.exit is not None else None,
        arrival_time=first_entry.record_time if first_entry is not None else None,
        method=first_entry.method if first_entry is not None else None,
        is_late=bool(first_entry is not None and first_entry.is_late),
        minutes_late=_minutes_late(first_entry, schedule, tolerance_minutes),
        worked_minutes=worked,
        scheduled_minutes=scheduled,
        overtime_minutes=overtime,
        completed_pairs=pairing.completed_pairs,
        scheduled_entry_time=schedule.entry_time,
        scheduled_exit_time=schedule.exit_time,
        flags=tuple(flags),
        late_entries=late_entries,
    )


def _load_employees(db: Session, employee_ids: Sequence[int] | None) -> list[Employee]:
    stmt = select(Employee).options(selectinload(Employee.shift).selectinload(Shift.details))
    if employee_ids is None:
        stmt = stmt.where(Employee.is_active.is_(True))
    else:
        stmt = stmt.where(Employee.id.in_(list(employee_ids)))
    return list(db.scalars(stmt.order_by(Employee.full_name.asc(), Employee.id.asc())).all())


def _load_records(
    db: Session,
    *,
    start_date: date,
    end_date: date,
    employee_ids: Sequence[int],
) -> dict[tuple[int, date], list[AttendanceRecord]]:
    grouped: dict[tuple[int, date], list[AttendanceRecord]] = defaultdict(list)
    if not employee_ids:
        return grouped
    rows = db.scalars(
        select(AttendanceRecord)
        .where(
            AttendanceRecord.record_date >= start_date,
            AttendanceRecord.record_date <= end_date,
            AttendanceRecord.employee_id.in_(list(employee_ids)),
        )
        .order_by(
            AttendanceRecord.employee_id.asc(),
            AttendanceRecord.record_date.asc(),
            AttendanceRecord.record_time.asc(),
            AttendanceRecord.id.asc(),
        )
    ).all()
    for row in rows:
        grouped[(row.employee_id, row.record_date)].append(row)
    return grouped


def aggregate_journeys(
    db: Session,
    *,
    start_date: date,
    end_date: date,
    employee_ids: Sequence[int] | None = None,
    allow_multiple: bool = False,
    tolerance_minutes: int = 15,
    default_scheduled_minutes: int = 540,
) -> list[Journey]:
    """Build one journey per employee and calendar day in ``[start_date, end_date]``.

    Employees default to the active ones. Records are read once for the whole
    range and grouped in memory; the result depends only on the persisted
    records and schedules, so repeated calls over unchanged data are equal.
    """
    validate_range(start_date, end_date)
    employees = _load_employees(db, employee_ids)
    records = _load_records(
        db,
        start_date=start_date,
        end_date=end_date,
        employee_ids=[employee.id for employee in employees],
    )

    journeys: list[Journey] = []
    for employee in employees:
        for day in iter_days(start_date, end_date):
            journeys.append(
                build_journey(
                    employee,
                    day,
                    records.get((employee.id, day), []),
                    allow_multiple=allow_multiple,
                    tolerance_minutes=tolerance_minutes,
                    default_scheduled_minutes=default_scheduled_minutes,
                )
            )

    journeys.sort(key=lambda item: (item.day, item.employee_name, item.employee_id))
    return journeys
