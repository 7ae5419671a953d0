from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from timeclock.audit import audit_request
from timeclock.db import get_db
from timeclock.errors import AttendanceRejected
from timeclock.schemas import (
    AttendanceRecordRead,
    AttendanceRejectedResponse,
    DailyAttendanceRow,
    EmployeeRead,
    JourneyRead,
    OvertimeReport,
    PurgeResponse,
    RangeReportRow,
    RecordAttendanceRequest,
    RecordAttendanceResponse,
    TardinessReport,
)
from timeclock.security import require_reports, require_superadmin, require_user
from timeclock.services.attendance import (
    list_latest_records,
    list_records_by_date,
    local_today,
    purge_all_records,
    record_attendance,
)
from timeclock.services.events import EventPublisher, get_event_publisher
from timeclock.services.journeys import validate_range
from timeclock.services.reports import (
    build_daily_report,
    build_overtime_report,
    build_range_report,
    build_tardiness_report,
    load_journeys,
)

router = APIRouter(tags=["attendance"])


def _date_range(
    start_date: date = Query(alias="startDate"),
    end_date: date = Query(alias="endDate"),
) -> tuple[date, date]:
    validate_range(start_date, end_date)
    return start_date, end_date


@router.post(
    "/api/attendance/record",
    response_model=RecordAttendanceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": AttendanceRejectedResponse},
        403: {"model": AttendanceRejectedResponse},
        404: {"model": AttendanceRejectedResponse},
    },
)
def record(
    payload: RecordAttendanceRequest,
    request: Request,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
    _claims: dict[str, Any] = Depends(require_user),
) -> RecordAttendanceResponse | JSONResponse:
    try:
        result = record_attendance(
            db,
            cedula=payload.cedula,
            method=payload.metodo,
            suggested_type=payload.tipo,
            publisher=publisher,
        )
    except AttendanceRejected as exc:
        body = AttendanceRejectedResponse(error=exc.code, message=exc.message)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    request.state.employee_id = result.employee.id
    request.state.record_id = result.record.id
    return RecordAttendanceResponse(
        message=result.message,
        employee=EmployeeRead.model_validate(result.employee),
        record=AttendanceRecordRead.model_validate(result.record),
        minutes_late=result.lateness.minutes_late,
        suggestion_overridden=result.suggestion_overridden,
    )


@router.get(
    "/api/attendance",
    response_model=list[AttendanceRecordRead],
    dependencies=[Depends(require_reports)],
)
def latest_records(
    limit: int | None = Query(default=None, ge=1, le=5000),
    db: Session = Depends(get_db),
) -> list[AttendanceRecordRead]:
    return [AttendanceRecordRead.model_validate(item) for item in list_latest_records(db, limit=limit)]


@router.get(
    "/api/attendance/date/{day}",
    response_model=list[AttendanceRecordRead],
    dependencies=[Depends(require_reports)],
)
def records_by_date(day: date, db: Session = Depends(get_db)) -> list[AttendanceRecordRead]:
    return [AttendanceRecordRead.model_validate(item) for item in list_records_by_date(db, day)]


@router.get(
    "/api/attendance/daily",
    response_model=list[DailyAttendanceRow],
    dependencies=[Depends(require_reports)],
)
def daily_report(
    day: date | None = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
) -> list[DailyAttendanceRow]:
    return build_daily_report(db, day=day or local_today())


@router.get(
    "/api/attendance/tardanzas",
    response_model=TardinessReport,
    dependencies=[Depends(require_reports)],
)
def tardiness_report(
    date_range: tuple[date, date] = Depends(_date_range),
    db: Session = Depends(get_db),
) -> TardinessReport:
    start_date, end_date = date_range
    return build_tardiness_report(db, start_date=start_date, end_date=end_date)


@router.get(
    "/api/attendance/journeys",
    response_model=list[JourneyRead],
    dependencies=[Depends(require_reports)],
)
def journeys(
    date_range: tuple[date, date] = Depends(_date_range),
    employee_id: list[int] | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[JourneyRead]:
    start_date, end_date = date_range
    items = load_journeys(db, start_date=start_date, end_date=end_date, employee_ids=employee_id)
    return [JourneyRead.model_validate(item) for item in items]


@router.get(
    "/api/attendance/report",
    response_model=list[RangeReportRow],
    dependencies=[Depends(require_reports)],
)
def range_report(
    date_range: tuple[date, date] = Depends(_date_range),
    db: Session = Depends(get_db),
) -> list[RangeReportRow]:
    start_date, end_date = date_range
    return build_range_report(db, start_date=start_date, end_date=end_date)


@router.get(
    "/api/attendance/overtime",
    response_model=OvertimeReport,
    dependencies=[Depends(require_reports)],
)
def overtime_report(
    date_range: tuple[date, date] = Depends(_date_range),
    db: Session = Depends(get_db),
) -> OvertimeReport:
    start_date, end_date = date_range
    return build_overtime_report(db, start_date=start_date, end_date=end_date)


@router.delete(
    "/api/attendance/all",
    response_model=PurgeResponse,
    dependencies=[Depends(require_superadmin)],
)
def purge_records(request: Request, db: Session = Depends(get_db)) -> PurgeResponse:
    deleted = purge_all_records(db)
    audit_request(
        db,
        request,
        action="ATTENDANCE_RECORDS_PURGED",
        entity_type="attendance_record",
        details={"deleted_count": deleted},
    )
    return PurgeResponse(message="All attendance records deleted", deleted_count=deleted)
