from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, time

from sqlalchemy.orm import Session

from timeclock.schemas import (
    DailyAttendanceRow,
    OvertimeAnalysis,
    OvertimeDayRead,
    OvertimeDepartmentRead,
    OvertimeEmployeeRead,
    OvertimeReport,
    OvertimeStats,
    OvertimeTopEmployeeRead,
    RangeReportRow,
    TardinessDetailRow,
    TardinessReport,
    TardinessSummaryRow,
)
from timeclock.services.global_settings import read_cycle_policy, read_tolerance_minutes
from timeclock.services.journeys import Journey, aggregate_journeys
from timeclock.settings import get_settings

NOT_ATTENDED = "No asistio"
PENDING_EXIT = "Pendiente"
NO_VALUE = "-"
NO_DEPARTMENT = "--"
TOP_OVERTIME_EMPLOYEES = 5

_STATUS_LABELS = {
    "COMPLETE": "Presente",
    "OPEN": "Presente",
    "ABSENT": "Ausente",
    "OFF": "Libre",
}


@dataclass(frozen=True)
class ReportConfig:
    allow_multiple: bool
    tolerance_minutes: int
    default_scheduled_minutes: int


def load_report_config(db: Session) -> ReportConfig:
    return ReportConfig(
        allow_multiple=read_cycle_policy(db).allow_multiple,
        tolerance_minutes=read_tolerance_minutes(db),
        default_scheduled_minutes=get_settings().default_scheduled_work_minutes,
    )


def load_journeys(
    db: Session,
    *,
    start_date: date,
    end_date: date,
    employee_ids: Sequence[int] | None = None,
) -> list[Journey]:
    config = load_report_config(db)
    return aggregate_journeys(
        db,
        start_date=start_date,
        end_date=end_date,
        employee_ids=employee_ids,
        allow_multiple=config.allow_multiple,
        tolerance_minutes=config.tolerance_minutes,
        default_scheduled_minutes=config.default_scheduled_minutes,
    )


def format_clock(value: time | None, *, default: str) -> str:
    if value is None:
        return default
    return value.strftime("%H:%M:%S")


def format_worked(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60}m"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _hours(minutes: int) -> float:
    return round(minutes / 60, 2)


def build_daily_report(db: Session, *, day: date) -> list[DailyAttendanceRow]:
    journeys = load_journeys(db, start_date=day, end_date=day)
    rows: list[DailyAttendanceRow] = []
    for journey in journeys:
        rows.append(
            DailyAttendanceRow(
                employee_id=journey.employee_id,
                employee_name=journey.employee_name,
                entry_time=format_clock(journey.arrival_time, default=NO_VALUE),
                exit_time=format_clock(journey.exit_time, default=NO_VALUE),
                method=journey.method.value.upper() if journey.method is not None else NO_VALUE,
                minutes_late=journey.minutes_late,
                is_late=journey.is_late,
                status=_STATUS_LABELS[journey.status],
            )
        )
    return rows


def build_tardiness_report(db: Session, *, start_date: date, end_date: date) -> TardinessReport:
    """Every late entry in the range, newest day first, plus per-employee totals.

    Strict days contribute at most their first entry; flexible days list each
    late entry of the day.
    """
    journeys = load_journeys(db, start_date=start_date, end_date=end_date)
    late = sorted(
        ((journey, entry) for journey in journeys for entry in journey.late_entries),
        key=lambda item: (-item[0].day.toordinal(), item[0].employee_id, item[1].record_time),
    )

    detail: list[TardinessDetailRow] = []
    grouped: dict[int, list[TardinessDetailRow]] = defaultdict(list)
    names: dict[int, str] = {}
    for journey, entry in late:
        row = TardinessDetailRow(
            employee_id=journey.employee_id,
            employee_name=journey.employee_name,
            day=journey.day,
            actual_time=format_clock(entry.record_time, default=NO_VALUE),
            scheduled_time=format_clock(journey.scheduled_entry_time, default=NO_VALUE),
            minutes_late=entry.minutes_late,
        )
        detail.append(row)
        grouped[journey.employee_id].append(row)
        names[journey.employee_id] = journey.employee_name

    summary: list[TardinessSummaryRow] = []
    for employee_id, rows in grouped.items():
        total_minutes = sum(row.minutes_late for row in rows)
        summary.append(
            TardinessSummaryRow(
                employee_id=employee_id,
                employee_name=names[employee_id],
                times_late=len(rows),
                total_minutes=total_minutes,
                average_minutes=round_half_up(total_minutes / len(rows)),
                records=rows,
            )
        )
    summary.sort(key=lambda item: (-item.times_late, item.employee_name, item.employee_id))
    return TardinessReport(detail=detail, summary=summary)


def _range_row(journey: Journey) -> RangeReportRow:
    if journey.status == "COMPLETE":
        worked = format_worked(journey.worked_minutes)
    else:
        worked = NOT_ATTENDED
    exit_default = PENDING_EXIT if journey.status == "OPEN" else NOT_ATTENDED
    return RangeReportRow(
        day=journey.day,
        employee_name=journey.employee_name,
        employee_id=journey.employee_id,
        entry_time=format_clock(journey.entry_time, default=NOT_ATTENDED),
        exit_time=format_clock(journey.exit_time, default=exit_default),
        worked=worked,
        worked_minutes=journey.worked_minutes,
        overtime_minutes=journey.overtime_minutes,
        minutes_late=journey.minutes_late,
        attended=journey.attended,
        status=_STATUS_LABELS[journey.status],
        flags=list(journey.flags),
    )


def build_range_report(db: Session, *, start_date: date, end_date: date) -> list[RangeReportRow]:
    journeys = load_journeys(db, start_date=start_date, end_date=end_date)
    return [_range_row(journey) for journey in journeys]


def build_overtime_report(db: Session, *, start_date: date, end_date: date) -> OvertimeReport:
    """Per-employee overtime totals with per-day detail and department breakdown."""
    journeys = load_journeys(db, start_date=start_date, end_date=end_date)

    days_by_employee: dict[int, list[OvertimeDayRead]] = defaultdict(list)
    sample: dict[int, Journey] = {}
    minutes_by_employee: dict[int, int] = defaultdict(int)
    for journey in journeys:
        if journey.status != "COMPLETE" or journey.overtime_minutes <= 0:
            continue
        days_by_employee[journey.employee_id].append(
            OvertimeDayRead(
                day=journey.day,
                entry_time=journey.entry_time,
                exit_time=journey.exit_time,
                scheduled_exit_time=journey.scheduled_exit_time,
                worked_minutes=journey.worked_minutes,
                scheduled_minutes=journey.scheduled_minutes,
                overtime_minutes=journey.overtime_minutes,
                overtime_hours=_hours(journey.overtime_minutes),
            )
        )
        minutes_by_employee[journey.employee_id] += journey.overtime_minutes
        sample.setdefault(journey.employee_id, journey)

    report: list[OvertimeEmployeeRead] = []
    for employee_id, days in days_by_employee.items():
        journey = sample[employee_id]
        total_minutes = minutes_by_employee[employee_id]
        report.append(
            OvertimeEmployeeRead(
                id=employee_id,
                cedula=journey.cedula,
                name=journey.employee_name,
                position=journey.position or NO_DEPARTMENT,
                department=journey.department or NO_DEPARTMENT,
                total_overtime_hours=_hours(total_minutes),
                total_overtime_minutes=total_minutes,
                days_with_overtime=len(days),
                average_hours_per_day=round(total_minutes / len(days) / 60, 2),
                days=days,
            )
        )
    report.sort(key=lambda item: (-item.total_overtime_minutes, item.name, item.id))

    departments: dict[str, list[OvertimeEmployeeRead]] = defaultdict(list)
    for item in report:
        departments[item.department].append(item)
    by_department = [
        OvertimeDepartmentRead(
            department=name,
            employees_with_overtime=len(items),
            total_overtime_hours=_hours(sum(item.total_overtime_minutes for item in items)),
        )
        for name, items in departments.items()
    ]
    by_department.sort(key=lambda item: (-item.total_overtime_hours, item.department))

    total_minutes = sum(item.total_overtime_minutes for item in report)
    stats = OvertimeStats(
        employees_with_overtime=len(report),
        total_overtime_hours=_hours(total_minutes),
        average_hours_per_employee=round(total_minutes / len(report) / 60, 2) if report else 0.0,
        top_department=by_department[0].department if by_department else "N/A",
    )
    analysis = OvertimeAnalysis(
        by_department=by_department,
        top_employees=[
            OvertimeTopEmployeeRead(
                id=item.id,
                name=item.name,
                department=item.department,
                total_overtime_hours=item.total_overtime_hours,
                days_with_overtime=item.days_with_overtime,
            )
            for item in report[:TOP_OVERTIME_EMPLOYEES]
        ],
    )
    return OvertimeReport(
        period={"start": start_date, "end": end_date},
        report=report,
        stats=stats,
        analysis=analysis,
    )
