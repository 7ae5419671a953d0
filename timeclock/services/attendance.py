from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from functools import lru_cache
from types import TracebackType
from zoneinfo import ZoneInfo

from sqlalchemy import Select, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from timeclock.errors import (
    DailyLimitReached,
    EmployeeInactive,
    EmployeeNotFound,
    InvalidSequence,
    PersistenceFailure,
)
from timeclock.models import AttendanceRecord, AttendanceType, CaptureMethod, Employee, Shift
from timeclock.services.cycle_policy import CycleDecision, CyclePolicyConfig, decide_next_type
from timeclock.services.events import ATTENDANCE_NEW_TOPIC, EventPublisher, safe_publish
from timeclock.services.global_settings import read_cycle_policy, read_tolerance_minutes
from timeclock.services.lateness import ON_TIME, LatenessResult, evaluate_lateness
from timeclock.services.schedule import resolve_schedule
from timeclock.settings import get_settings

logger = logging.getLogger("timeclock.attendance")


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or "America/Bogota"
    try:
        return ZoneInfo(raw_name)
    except Exception:
        logger.warning("attendance_timezone_invalid", extra={"timezone": raw_name})
        return ZoneInfo("America/Bogota")


def local_now(now: datetime | None = None) -> datetime:
    reference = now or datetime.now(timezone.utc)
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    return reference.astimezone(attendance_timezone())


def local_today(now: datetime | None = None) -> date:
    return local_now(now).date()


@dataclass(frozen=True)
class RecordResult:
    employee: Employee
    record: AttendanceRecord
    lateness: LatenessResult
    suggestion_overridden: bool = False

    @property
    def message(self) -> str:
        label = "Entrada registrada" if self.record.type == AttendanceType.ENTRY else "Salida registrada"
        suffix = " (Tardanza)" if self.lateness.late else ""
        return f"{self.employee.full_name} - {label}{suffix}"


def employee_lock_statement(cedula: str) -> Select[tuple[Employee]]:
    return (
        select(Employee)
        .options(selectinload(Employee.shift).selectinload(Shift.details))
        .where(Employee.cedula == cedula)
        .with_for_update()
    )


class RecordingUnitOfWork:
    """Transaction scope of one check-in.

    The employee row is locked on lookup and stays locked until ``commit`` or
    rollback, so two terminals cannot both classify against the same history.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self._committed = False

    def __enter__(self) -> RecordingUnitOfWork:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is not None or not self._committed:
            self.db.rollback()

    def lock_employee(self, cedula: str) -> Employee | None:
        return self.db.scalar(employee_lock_statement(cedula))

    def policy_config(self) -> CyclePolicyConfig:
        return read_cycle_policy(self.db)

    def tolerance_minutes(self) -> int:
        return read_tolerance_minutes(self.db)

    def types_recorded_on(self, employee_id: int, day: date) -> list[AttendanceType]:
        rows = self.db.scalars(
            select(AttendanceRecord.type)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.record_date == day,
            )
            .order_by(AttendanceRecord.record_time.asc(), AttendanceRecord.id.asc())
        ).all()
        return [AttendanceType(item) for item in rows]

    def add(self, record: AttendanceRecord) -> None:
        self.db.add(record)

    def commit(self) -> None:
        self.db.commit()
        self._committed = True


def _reject(decision: CycleDecision, employee: Employee) -> None:
    logger.info(
        "attendance_rejected",
        extra={
            "employee_id": employee.id,
            "reason": decision.rejection,
        },
    )
    if decision.rejection == "DAILY_LIMIT_REACHED":
        raise DailyLimitReached(employee.full_name)
    raise InvalidSequence(employee.full_name)


def _evaluate_entry_lateness(
    uow: RecordingUnitOfWork,
    employee: Employee,
    day: date,
    actual: time,
) -> LatenessResult:
    schedule = resolve_schedule(employee, day)
    if not schedule.is_working_day:
        return ON_TIME
    return evaluate_lateness(actual, schedule.entry_time, tolerance_minutes=uow.tolerance_minutes())


def build_event_payload(result: RecordResult) -> dict[str, object]:
    record = result.record
    return {
        "employee_id": result.employee.id,
        "employee_name": result.employee.full_name,
        "cedula": result.employee.cedula,
        "type": record.type.value,
        "date": record.record_date.isoformat(),
        "time": record.record_time.strftime("%H:%M:%S"),
        "method": record.method.value,
        "late": record.is_late,
        "minutes_late": result.lateness.minutes_late,
    }


def record_attendance(
    db: Session,
    *,
    cedula: str,
    method: CaptureMethod,
    publisher: EventPublisher,
    suggested_type: AttendanceType | None = None,
    now: datetime | None = None,
) -> RecordResult:
    normalized_cedula = cedula.strip()
    current = local_now(now)
    day = current.date()
    actual = current.time().replace(microsecond=0, tzinfo=None)

    try:
        with RecordingUnitOfWork(db) as uow:
            employee = uow.lock_employee(normalized_cedula)
            if employee is None:
                logger.info("attendance_rejected", extra={"cedula": normalized_cedula, "reason": "EMPLOYEE_NOT_FOUND"})
                raise EmployeeNotFound(normalized_cedula)
            if not employee.is_active:
                logger.info("attendance_rejected", extra={"employee_id": employee.id, "reason": "EMPLOYEE_INACTIVE"})
                raise EmployeeInactive(employee.full_name)

            decision = decide_next_type(
                uow.types_recorded_on(employee.id, day),
                config=uow.policy_config(),
                suggested_type=suggested_type,
            )
            if not decision.accepted:
                _reject(decision, employee)
            if decision.suggestion_overridden:
                logger.info(
                    "attendance_suggestion_overridden",
                    extra={
                        "employee_id": employee.id,
                        "suggested_type": suggested_type.value if suggested_type else None,
                        "record_type": decision.record_type.value,
                    },
                )

            lateness = ON_TIME
            if decision.record_type == AttendanceType.ENTRY:
                lateness = _evaluate_entry_lateness(uow, employee, day, actual)

            record = AttendanceRecord(
                employee_id=employee.id,
                type=decision.record_type,
                record_date=day,
                record_time=actual,
                method=method,
                is_late=lateness.late,
            )
            uow.add(record)
            uow.commit()
    except SQLAlchemyError as exc:
        logger.exception(
            "attendance_persistence_failed",
            extra={"cedula": normalized_cedula, "error_type": exc.__class__.__name__},
        )
        raise PersistenceFailure() from exc

    result = RecordResult(
        employee=employee,
        record=record,
        lateness=lateness,
        suggestion_overridden=decision.suggestion_overridden,
    )
    logger.info(
        "attendance_recorded",
        extra={
            "employee_id": employee.id,
            "record_id": record.id,
            "type": record.type.value,
            "method": record.method.value,
            "late": record.is_late,
            "minutes_late": lateness.minutes_late,
        },
    )
    safe_publish(publisher, ATTENDANCE_NEW_TOPIC, build_event_payload(result))
    return result


def list_latest_records(db: Session, *, limit: int | None = None) -> list[AttendanceRecord]:
    effective_limit = limit if limit is not None else get_settings().latest_records_limit
    return list(
        db.scalars(
            select(AttendanceRecord)
            .order_by(AttendanceRecord.created_at.desc(), AttendanceRecord.id.desc())
            .limit(max(1, effective_limit))
        ).all()
    )


def list_records_by_date(db: Session, day: date) -> list[AttendanceRecord]:
    return list(
        db.scalars(
            select(AttendanceRecord)
            .where(AttendanceRecord.record_date == day)
            .order_by(AttendanceRecord.record_time.asc(), AttendanceRecord.id.asc())
        ).all()
    )


def purge_all_records(db: Session) -> int:
    """Delete every attendance record. Privileged bulk operation."""
    try:
        total = db.scalar(select(func.count()).select_from(AttendanceRecord)) or 0
        db.execute(delete(AttendanceRecord))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("attendance_purge_failed", extra={"error_type": exc.__class__.__name__})
        raise PersistenceFailure() from exc
    logger.warning("attendance_records_purged", extra={"deleted_count": int(total)})
    return int(total)
