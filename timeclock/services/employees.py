from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from timeclock.errors import ApiError
from timeclock.models import Employee, Shift
from timeclock.schemas import EmployeeImportError, EmployeeImportResult, EmployeeImportRow
from timeclock.services.events import EMPLOYEES_IMPORTED_TOPIC, EventPublisher, safe_publish

logger = logging.getLogger("timeclock.employees")


def get_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise ApiError(status_code=404, code="EMPLOYEE_NOT_FOUND", message="Empleado no encontrado.")
    return employee


def _apply_row(employee: Employee, row: EmployeeImportRow) -> None:
    employee.full_name = row.full_name
    employee.position = row.position
    employee.department = row.department
    employee.entry_time = row.entry_time
    employee.exit_time = row.exit_time
    employee.lunch_start = row.lunch_start
    employee.lunch_end = row.lunch_end
    employee.shift_id = row.shift_id
    employee.is_active = row.is_active


def import_employees(
    db: Session,
    rows: Sequence[EmployeeImportRow],
    *,
    publisher: EventPublisher,
) -> EmployeeImportResult:
    """Create or update employees keyed by cedula.

    Rows that reference an unknown shift, put an active employee on an
    inactive shift, or repeat a cedula already seen in the same batch are
    reported back and skipped; the rest commit together.
    """
    cedulas = [row.cedula for row in rows]
    existing = {
        employee.cedula: employee
        for employee in db.scalars(select(Employee).where(Employee.cedula.in_(cedulas))).all()
    }
    shift_ids = {row.shift_id for row in rows if row.shift_id is not None}
    shift_states: dict[int, bool] = {}
    if shift_ids:
        rows_by_id = db.execute(select(Shift.id, Shift.is_active).where(Shift.id.in_(shift_ids))).all()
        shift_states = {shift_id: is_active for shift_id, is_active in rows_by_id}

    created = 0
    updated = 0
    errors: list[EmployeeImportError] = []
    seen: set[str] = set()
    imported: list[str] = []
    for index, row in enumerate(rows, start=1):
        if row.cedula in seen:
            errors.append(EmployeeImportError(row=index, cedula=row.cedula, message="Cedula repetida en el lote."))
            continue
        seen.add(row.cedula)
        if row.shift_id is not None and row.shift_id not in shift_states:
            errors.append(EmployeeImportError(row=index, cedula=row.cedula, message="Turno no encontrado."))
            continue
        if row.shift_id is not None and row.is_active and not shift_states[row.shift_id]:
            errors.append(EmployeeImportError(row=index, cedula=row.cedula, message="Turno inactivo."))
            continue

        employee = existing.get(row.cedula)
        if employee is None:
            employee = Employee(cedula=row.cedula)
            _apply_row(employee, row)
            db.add(employee)
            created += 1
        else:
            _apply_row(employee, row)
            updated += 1
        imported.append(row.cedula)

    db.commit()
    result = EmployeeImportResult(created=created, updated=updated, errors=errors)
    logger.info(
        "employees_imported",
        extra={"created_count": created, "updated_count": updated, "failed_count": len(errors)},
    )
    safe_publish(
        publisher,
        EMPLOYEES_IMPORTED_TOPIC,
        {
            "created": created,
            "updated": updated,
            "failed": len(errors),
            "cedulas": sorted(imported),
        },
    )
    return result


def assign_shift(db: Session, employee_id: int, shift_id: int | None) -> Employee:
    employee = get_employee(db, employee_id)
    if shift_id is not None:
        shift = db.get(Shift, shift_id)
        if shift is None:
            raise ApiError(status_code=404, code="SHIFT_NOT_FOUND", message="Turno no encontrado.")
        if not shift.is_active:
            raise ApiError(
                status_code=409,
                code="SHIFT_INACTIVE",
                message="No se puede asignar un turno inactivo.",
            )
    previous = employee.shift_id
    employee.shift_id = shift_id
    db.commit()
    db.refresh(employee)
    logger.info(
        "employee_shift_assigned",
        extra={"employee_id": employee.id, "previous_shift_id": previous, "shift_id": shift_id},
    )
    return employee
