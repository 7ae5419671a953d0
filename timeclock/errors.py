from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class AttendanceRejected(ApiError):
    """A check-in refused for a reason the terminal can show to the employee."""


class EmployeeNotFound(AttendanceRejected):
    def __init__(self, cedula: str):
        super().__init__(
            status_code=404,
            code="EMPLOYEE_NOT_FOUND",
            message="Empleado no encontrado.",
        )
        self.cedula = cedula


class EmployeeInactive(AttendanceRejected):
    def __init__(self, employee_name: str):
        super().__init__(
            status_code=403,
            code="EMPLOYEE_INACTIVE",
            message=f"{employee_name} esta inactivo y no puede marcar asistencia.",
        )


class InvalidSequence(AttendanceRejected):
    def __init__(self, employee_name: str):
        super().__init__(
            status_code=400,
            code="INVALID_SEQUENCE",
            message=f"{employee_name} no puede marcar otra salida. La jornada debe comenzar con entrada.",
        )


class DailyLimitReached(AttendanceRejected):
    def __init__(self, employee_name: str):
        super().__init__(
            status_code=400,
            code="DAILY_LIMIT_REACHED",
            message=f"{employee_name} ya completo su jornada hoy (1 entrada + 1 salida). No puede marcar mas.",
        )


class ScheduleNotFound(ApiError):
    def __init__(self, shift_id: int, weekday: str):
        super().__init__(
            status_code=500,
            code="SCHEDULE_NOT_FOUND",
            message="Unexpected server error.",
        )
        self.shift_id = shift_id
        self.weekday = weekday


class PersistenceFailure(ApiError):
    def __init__(self) -> None:
        super().__init__(
            status_code=503,
            code="PERSISTENCE_FAILURE",
            message="No se pudo registrar la asistencia. Intente nuevamente.",
        )


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
