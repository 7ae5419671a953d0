from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from timeclock.audit import audit_request
from timeclock.db import get_db
from timeclock.models import Shift
from timeclock.schemas import (
    EmployeeImportRequest,
    EmployeeImportResult,
    EmployeeRead,
    EmployeeShiftAssign,
    GlobalSettingRead,
    GlobalSettingUpdate,
    ShiftCreate,
    ShiftDeleteResponse,
    ShiftRead,
    ShiftUpdate,
)
from timeclock.security import require_management, require_reports, require_superadmin
from timeclock.services.employees import assign_shift, import_employees
from timeclock.services.events import EventPublisher, get_event_publisher
from timeclock.services.global_settings import get_setting, list_settings, update_setting
from timeclock.services.shifts import (
    active_employee_counts,
    count_active_employees,
    create_shift,
    delete_shift,
    get_shift,
    list_shift_employees,
    list_shifts,
    update_shift,
)

router = APIRouter(tags=["admin"])


def _shift_read(shift: Shift, active_employee_count: int) -> ShiftRead:
    item = ShiftRead.model_validate(shift)
    item.active_employee_count = active_employee_count
    return item


@router.get(
    "/api/shifts",
    response_model=list[ShiftRead],
    dependencies=[Depends(require_management)],
)
def list_shifts_endpoint(db: Session = Depends(get_db)) -> list[ShiftRead]:
    counts = active_employee_counts(db)
    return [_shift_read(shift, counts.get(shift.id, 0)) for shift in list_shifts(db)]


@router.post(
    "/api/shifts",
    response_model=ShiftRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_management)],
)
def create_shift_endpoint(
    payload: ShiftCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> ShiftRead:
    shift = create_shift(db, payload)
    audit_request(
        db,
        request,
        action="SHIFT_CREATED",
        entity_type="shift",
        entity_id=str(shift.id),
        details={"name": shift.name, "is_active": shift.is_active},
    )
    return _shift_read(shift, 0)


@router.get(
    "/api/shifts/{shift_id}",
    response_model=ShiftRead,
    dependencies=[Depends(require_management)],
)
def get_shift_endpoint(shift_id: int, db: Session = Depends(get_db)) -> ShiftRead:
    shift = get_shift(db, shift_id)
    return _shift_read(shift, count_active_employees(db, shift.id))


@router.put(
    "/api/shifts/{shift_id}",
    response_model=ShiftRead,
    dependencies=[Depends(require_management)],
)
def update_shift_endpoint(
    shift_id: int,
    payload: ShiftUpdate,
    request: Request,
    db: Session = Depends(get_db),
) -> ShiftRead:
    shift = update_shift(db, shift_id, payload)
    audit_request(
        db,
        request,
        action="SHIFT_UPDATED",
        entity_type="shift",
        entity_id=str(shift.id),
        details=payload.model_dump(mode="json", exclude_none=True),
    )
    return _shift_read(shift, count_active_employees(db, shift.id))


@router.delete(
    "/api/shifts/{shift_id}",
    response_model=ShiftDeleteResponse,
    dependencies=[Depends(require_management)],
)
def delete_shift_endpoint(
    shift_id: int,
    request: Request,
    db: Session = Depends(get_db),
) -> ShiftDeleteResponse:
    delete_shift(db, shift_id)
    audit_request(
        db,
        request,
        action="SHIFT_DELETED",
        entity_type="shift",
        entity_id=str(shift_id),
    )
    return ShiftDeleteResponse(ok=True, id=shift_id)


@router.get(
    "/api/shifts/{shift_id}/employees",
    response_model=list[EmployeeRead],
    dependencies=[Depends(require_management)],
)
def shift_employees_endpoint(shift_id: int, db: Session = Depends(get_db)) -> list[EmployeeRead]:
    return [EmployeeRead.model_validate(item) for item in list_shift_employees(db, shift_id)]


@router.get(
    "/api/settings",
    response_model=list[GlobalSettingRead],
    dependencies=[Depends(require_reports)],
)
def list_settings_endpoint(db: Session = Depends(get_db)) -> list[GlobalSettingRead]:
    return [GlobalSettingRead.model_validate(item) for item in list_settings(db)]


@router.get(
    "/api/settings/{key}",
    response_model=GlobalSettingRead,
    dependencies=[Depends(require_reports)],
)
def get_setting_endpoint(key: str, db: Session = Depends(get_db)) -> GlobalSettingRead:
    return GlobalSettingRead.model_validate(get_setting(db, key))


@router.patch(
    "/api/settings/{key}",
    response_model=GlobalSettingRead,
    dependencies=[Depends(require_superadmin)],
)
def update_setting_endpoint(
    key: str,
    payload: GlobalSettingUpdate,
    request: Request,
    db: Session = Depends(get_db),
) -> GlobalSettingRead:
    setting, previous = update_setting(db, key, payload.value)
    audit_request(
        db,
        request,
        action="GLOBAL_SETTING_UPDATED",
        entity_type="global_setting",
        entity_id=key,
        details={"previous_value": previous, "value": setting.value},
    )
    return GlobalSettingRead.model_validate(setting)


@router.post(
    "/api/employees/import",
    response_model=EmployeeImportResult,
    dependencies=[Depends(require_management)],
)
def import_employees_endpoint(
    payload: EmployeeImportRequest,
    request: Request,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> EmployeeImportResult:
    result = import_employees(db, payload.employees, publisher=publisher)
    audit_request(
        db,
        request,
        action="EMPLOYEES_IMPORTED",
        entity_type="employee",
        details={"created": result.created, "updated": result.updated, "failed": len(result.errors)},
    )
    return result


@router.patch(
    "/api/employees/{employee_id}/shift",
    response_model=EmployeeRead,
    dependencies=[Depends(require_management)],
)
def assign_shift_endpoint(
    employee_id: int,
    payload: EmployeeShiftAssign,
    request: Request,
    db: Session = Depends(get_db),
) -> EmployeeRead:
    employee = assign_shift(db, employee_id, payload.shift_id)
    audit_request(
        db,
        request,
        action="EMPLOYEE_SHIFT_ASSIGNED",
        entity_type="employee",
        entity_id=str(employee.id),
        details={"shift_id": payload.shift_id},
    )
    return EmployeeRead.model_validate(employee)
