from __future__ import annotations

from collections.abc import Iterable
from datetime import date, time

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from timeclock.db import Base
from timeclock.models import (
    AttendanceRecord,
    AttendanceType,
    CaptureMethod,
    Employee,
    GlobalSetting,
    Shift,
    ShiftDayDetail,
    Weekday,
)

WEEKEND = (Weekday.SATURDAY, Weekday.SUNDAY)


def make_session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def weekly_details(
    *,
    entry: time = time(8, 0),
    exit_: time = time(17, 0),
    off_days: Iterable[Weekday] = WEEKEND,
    skip: Iterable[Weekday] = (),
) -> list[ShiftDayDetail]:
    off = set(off_days)
    skipped = set(skip)
    rows: list[ShiftDayDetail] = []
    for weekday in Weekday.ordered():
        if weekday in skipped:
            continue
        working = weekday not in off
        rows.append(
            ShiftDayDetail(
                weekday=weekday,
                weekday_index=weekday.ordinal,
                is_working_day=working,
                entry_time=entry if working else None,
                exit_time=exit_ if working else None,
            )
        )
    return rows


def add_shift(
    db: Session,
    name: str,
    *,
    details: list[ShiftDayDetail] | None = None,
    is_active: bool = True,
) -> Shift:
    shift = Shift(name=name, is_active=is_active, details=details if details is not None else weekly_details())
    db.add(shift)
    db.commit()
    return shift


def add_employee(
    db: Session,
    *,
    cedula: str,
    full_name: str,
    entry_time: time = time(9, 0),
    exit_time: time = time(18, 0),
    shift: Shift | None = None,
    is_active: bool = True,
    department: str | None = None,
    position: str | None = None,
) -> Employee:
    employee = Employee(
        cedula=cedula,
        full_name=full_name,
        entry_time=entry_time,
        exit_time=exit_time,
        shift_id=shift.id if shift is not None else None,
        is_active=is_active,
        department=department,
        position=position,
    )
    db.add(employee)
    db.commit()
    return employee


def add_record(
    db: Session,
    employee: Employee,
    record_type: AttendanceType,
    day: date,
    at: time,
    *,
    is_late: bool = False,
    method: CaptureMethod = CaptureMethod.MANUAL,
) -> AttendanceRecord:
    record = AttendanceRecord(
        employee_id=employee.id,
        type=record_type,
        record_date=day,
        record_time=at,
        method=method,
        is_late=is_late,
    )
    db.add(record)
    db.commit()
    return record


def set_setting(db: Session, key: str, value: str) -> None:
    db.add(GlobalSetting(key=key, value=value))
    db.commit()
