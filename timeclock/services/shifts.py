from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from timeclock.errors import ApiError
from timeclock.models import Employee, Shift, ShiftDayDetail, Weekday
from timeclock.schemas import ShiftCreate, ShiftDayDetailInput, ShiftUpdate

logger = logging.getLogger("timeclock.shifts")


def _invalid(message: str) -> ApiError:
    return ApiError(status_code=400, code="INVALID_SHIFT", message=message)


def _duplicate_name() -> ApiError:
    return ApiError(status_code=409, code="SHIFT_NAME_EXISTS", message="Ya existe un turno con ese nombre.")


def validate_shift_details(details: Sequence[ShiftDayDetailInput]) -> None:
    seen: set[Weekday] = set()
    for detail in details:
        if detail.weekday in seen:
            raise _invalid(f"El dia {detail.weekday.value} esta repetido.")
        seen.add(detail.weekday)

    missing = [weekday.value for weekday in Weekday.ordered() if weekday not in seen]
    if missing:
        raise _invalid(f"Faltan los siguientes dias: {', '.join(missing)}")

    for detail in details:
        if not detail.is_working_day:
            continue
        day_name = detail.weekday.value
        if detail.entry_time is None or detail.exit_time is None:
            raise _invalid(f"Dia laboral {day_name} debe tener hora de entrada y salida.")
        if detail.entry_time >= detail.exit_time:
            raise _invalid(f"En {day_name}: hora de salida debe ser despues de hora de entrada.")
        if (detail.lunch_start is None) != (detail.lunch_end is None):
            raise _invalid(f"En {day_name}: el almuerzo requiere hora de inicio y fin.")
        if detail.lunch_start is not None and detail.lunch_end is not None:
            if not (detail.entry_time <= detail.lunch_start < detail.lunch_end <= detail.exit_time):
                raise _invalid(
                    f"Horario de almuerzo invalido en {day_name}. "
                    f"Debe estar entre {detail.entry_time.strftime('%H:%M')} y {detail.exit_time.strftime('%H:%M')}."
                )


def _build_details(details: Sequence[ShiftDayDetailInput]) -> list[ShiftDayDetail]:
    rows: list[ShiftDayDetail] = []
    for detail in sorted(details, key=lambda item: item.weekday.ordinal):
        working = detail.is_working_day
        rows.append(
            ShiftDayDetail(
                weekday=detail.weekday,
                weekday_index=detail.weekday.ordinal,
                is_working_day=working,
                entry_time=detail.entry_time if working else None,
                exit_time=detail.exit_time if working else None,
                lunch_start=detail.lunch_start if working else None,
                lunch_end=detail.lunch_end if working else None,
            )
        )
    return rows


def count_active_employees(db: Session, shift_id: int) -> int:
    total = db.scalar(
        select(func.count(Employee.id)).where(
            Employee.shift_id == shift_id,
            Employee.is_active.is_(True),
        )
    )
    return int(total or 0)


def active_employee_counts(db: Session) -> dict[int, int]:
    rows = db.execute(
        select(Employee.shift_id, func.count(Employee.id))
        .where(Employee.shift_id.is_not(None), Employee.is_active.is_(True))
        .group_by(Employee.shift_id)
    ).all()
    return {int(shift_id): int(count) for shift_id, count in rows}


def _name_taken(db: Session, name: str, *, exclude_id: int | None = None) -> bool:
    stmt = select(Shift.id).where(Shift.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Shift.id != exclude_id)
    return db.scalar(stmt) is not None


def list_shifts(db: Session) -> list[Shift]:
    return list(
        db.scalars(select(Shift).options(selectinload(Shift.details)).order_by(Shift.name.asc(), Shift.id.asc())).all()
    )


def get_shift(db: Session, shift_id: int) -> Shift:
    shift = db.scalar(select(Shift).options(selectinload(Shift.details)).where(Shift.id == shift_id))
    if shift is None:
        raise ApiError(status_code=404, code="SHIFT_NOT_FOUND", message="Turno no encontrado.")
    return shift


def _commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise _duplicate_name() from exc


def create_shift(db: Session, payload: ShiftCreate) -> Shift:
    name = payload.name.strip()
    if not name:
        raise _invalid("Nombre y detalles de horario son requeridos.")
    validate_shift_details(payload.details)
    if _name_taken(db, name):
        raise _duplicate_name()

    shift = Shift(
        name=name,
        description=payload.description,
        is_active=payload.is_active,
        details=_build_details(payload.details),
    )
    db.add(shift)
    _commit(db)
    db.refresh(shift)
    logger.info("shift_created", extra={"shift_id": shift.id, "shift_name": shift.name})
    return shift


def update_shift(db: Session, shift_id: int, payload: ShiftUpdate) -> Shift:
    shift = get_shift(db, shift_id)

    if payload.name is not None:
        name = payload.name.strip()
        if not name:
            raise _invalid("El nombre del turno no puede estar vacio.")
        if _name_taken(db, name, exclude_id=shift.id):
            raise _duplicate_name()
        shift.name = name
    if payload.description is not None:
        shift.description = payload.description
    if payload.is_active is False and shift.is_active:
        if count_active_employees(db, shift.id) > 0:
            raise ApiError(
                status_code=409,
                code="SHIFT_IN_USE",
                message="No se puede desactivar un turno con empleados activos asignados.",
            )
    if payload.is_active is not None:
        shift.is_active = payload.is_active
    if payload.details is not None:
        validate_shift_details(payload.details)
        shift.details.clear()
        db.flush()
        shift.details.extend(_build_details(payload.details))

    _commit(db)
    db.refresh(shift)
    logger.info("shift_updated", extra={"shift_id": shift.id, "shift_name": shift.name})
    return shift


def delete_shift(db: Session, shift_id: int) -> None:
    shift = get_shift(db, shift_id)
    if count_active_employees(db, shift.id) > 0:
        raise ApiError(
            status_code=409,
            code="SHIFT_IN_USE",
            message="Error al eliminar. El horario tiene empleados activos asignados.",
        )
    db.delete(shift)
    db.commit()
    logger.info("shift_deleted", extra={"shift_id": shift_id})


def list_shift_employees(db: Session, shift_id: int) -> list[Employee]:
    get_shift(db, shift_id)
    return list(
        db.scalars(
            select(Employee)
            .where(Employee.shift_id == shift_id, Employee.is_active.is_(True))
            .order_by(Employee.full_name.asc(), Employee.id.asc())
        ).all()
    )
