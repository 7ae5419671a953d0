from datetime import date, datetime, time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from timeclock.models import AttendanceType, CaptureMethod, Weekday

_TYPE_ALIASES = {
    "entrada": AttendanceType.ENTRY.value,
    "salida": AttendanceType.EXIT.value,
}
_METHOD_ALIASES = {
    "biometrico": CaptureMethod.BIOMETRIC.value,
    "huella": CaptureMethod.BIOMETRIC.value,
}


class RecordAttendanceRequest(BaseModel):
    cedula: str = Field(min_length=1, max_length=32)
    metodo: CaptureMethod
    tipo: AttendanceType | None = None

    @field_validator("cedula")
    @classmethod
    def _strip_cedula(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("cedula is required.")
        return normalized

    @field_validator("metodo", mode="before")
    @classmethod
    def _normalize_method(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalized = value.strip().lower()
            return _METHOD_ALIASES.get(normalized, normalized)
        return value

    @field_validator("tipo", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalized = value.strip().lower()
            if not normalized:
                return None
            return _TYPE_ALIASES.get(normalized, normalized)
        return value


class EmployeeRead(BaseModel):
    id: int
    cedula: str
    full_name: str
    position: str | None = None
    department: str | None = None
    entry_time: time
    exit_time: time
    lunch_start: time | None = None
    lunch_end: time | None = None
    shift_id: int | None = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class AttendanceRecordRead(BaseModel):
    id: int
    employee_id: int
    type: AttendanceType
    record_date: date
    record_time: time
    method: CaptureMethod
    is_late: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RecordAttendanceResponse(BaseModel):
    success: bool = True
    message: str
    employee: EmployeeRead
    record: AttendanceRecordRead
    minutes_late: int = 0
    suggestion_overridden: bool = False


class AttendanceRejectedResponse(BaseModel):
    success: bool = False
    error: str
    message: str


class DailyAttendanceRow(BaseModel):
    employee_id: int = Field(serialization_alias="empleado_id")
    employee_name: str = Field(serialization_alias="empleado")
    entry_time: str = Field(serialization_alias="horaEntrada")
    exit_time: str = Field(serialization_alias="horaSalida")
    method: str = Field(serialization_alias="metodo")
    minutes_late: int = Field(serialization_alias="tardanza")
    is_late: bool = Field(serialization_alias="esTardanza")
    status: str = Field(serialization_alias="estado")


class TardinessDetailRow(BaseModel):
    employee_id: int = Field(serialization_alias="empleado_id")
    employee_name: str = Field(serialization_alias="empleado")
    day: date = Field(serialization_alias="fecha")
    actual_time: str = Field(serialization_alias="horaReal")
    scheduled_time: str = Field(serialization_alias="horaPlaneada")
    minutes_late: int = Field(serialization_alias="minutosTarde")


class TardinessSummaryRow(BaseModel):
    employee_id: int = Field(serialization_alias="empleado_id")
    employee_name: str = Field(serialization_alias="nombre")
    times_late: int = Field(serialization_alias="totalVeces")
    total_minutes: int = Field(serialization_alias="totalMinutos")
    average_minutes: int = Field(serialization_alias="promedioMinutos")
    records: list[TardinessDetailRow] = Field(default_factory=list, serialization_alias="registros")


class TardinessReport(BaseModel):
    detail: list[TardinessDetailRow] = Field(default_factory=list, serialization_alias="detalle")
    summary: list[TardinessSummaryRow] = Field(default_factory=list, serialization_alias="resumen")


class JourneyRead(BaseModel):
    employee_id: int
    employee_name: str
    cedula: str
    position: str | None = None
    department: str | None = None
    day: date
    status: str
    is_working_day: bool
    entry_time: time | None = None
    exit_time: time | None = None
    arrival_time: time | None = None
    method: CaptureMethod | None = None
    is_late: bool
    minutes_late: int
    worked_minutes: int
    scheduled_minutes: int
    overtime_minutes: int
    completed_pairs: int
    scheduled_entry_time: time | None = None
    scheduled_exit_time: time | None = None
    flags: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class RangeReportRow(BaseModel):
    day: date = Field(serialization_alias="fecha")
    employee_name: str = Field(serialization_alias="empleado")
    employee_id: int = Field(serialization_alias="empleado_id")
    entry_time: str = Field(serialization_alias="horaEntrada")
    exit_time: str = Field(serialization_alias="horaSalida")
    worked: str = Field(serialization_alias="horasTrabajadas")
    worked_minutes: int = Field(serialization_alias="minutosTrabajados")
    overtime_minutes: int = Field(serialization_alias="minutosExtra")
    minutes_late: int = Field(serialization_alias="tardanza")
    attended: bool = Field(serialization_alias="asistio")
    status: str = Field(serialization_alias="estado")
    flags: list[str] = Field(default_factory=list)


class OvertimeDayRead(BaseModel):
    day: date = Field(serialization_alias="fecha")
    entry_time: time = Field(serialization_alias="hora_entrada")
    exit_time: time = Field(serialization_alias="hora_salida")
    scheduled_exit_time: time | None = Field(default=None, serialization_alias="hora_salida_esperada")
    worked_minutes: int = Field(serialization_alias="minutos_trabajados")
    scheduled_minutes: int = Field(serialization_alias="minutos_programados")
    overtime_minutes: int = Field(serialization_alias="minutos_extras")
    overtime_hours: float = Field(serialization_alias="horas_extras")


class OvertimeEmployeeRead(BaseModel):
    id: int
    cedula: str
    name: str = Field(serialization_alias="nombre")
    position: str = Field(serialization_alias="cargo")
    department: str = Field(serialization_alias="departamento")
    total_overtime_hours: float = Field(serialization_alias="total_horas_extras")
    total_overtime_minutes: int = Field(serialization_alias="total_minutos_extras")
    days_with_overtime: int = Field(serialization_alias="dias_con_extras")
    average_hours_per_day: float = Field(serialization_alias="promedio_horas_por_dia")
    days: list[OvertimeDayRead] = Field(default_factory=list, serialization_alias="detalle_dias")


class OvertimeDepartmentRead(BaseModel):
    department: str = Field(serialization_alias="departamento")
    employees_with_overtime: int = Field(serialization_alias="empleados_con_extras")
    total_overtime_hours: float = Field(serialization_alias="total_horas_extras")


class OvertimeTopEmployeeRead(BaseModel):
    id: int
    name: str = Field(serialization_alias="nombre")
    department: str = Field(serialization_alias="departamento")
    total_overtime_hours: float = Field(serialization_alias="total_horas_extras")
    days_with_overtime: int = Field(serialization_alias="dias_con_extras")


class OvertimeStats(BaseModel):
    employees_with_overtime: int = Field(serialization_alias="total_empleados_con_extras")
    total_overtime_hours: float = Field(serialization_alias="total_horas_extras")
    average_hours_per_employee: float = Field(serialization_alias="promedio_horas_por_empleado")
    top_department: str = Field(serialization_alias="departamento_con_mas_extras")


class OvertimeAnalysis(BaseModel):
    by_department: list[OvertimeDepartmentRead] = Field(default_factory=list, serialization_alias="por_departamento")
    top_employees: list[OvertimeTopEmployeeRead] = Field(default_factory=list, serialization_alias="top_5_empleados")


class OvertimeReport(BaseModel):
    period: dict[str, date]
    report: list[OvertimeEmployeeRead] = Field(default_factory=list)
    stats: OvertimeStats
    analysis: OvertimeAnalysis


class PurgeResponse(BaseModel):
    message: str
    deleted_count: int


class ShiftDayDetailInput(BaseModel):
    weekday: Weekday
    is_working_day: bool = True
    entry_time: time | None = None
    exit_time: time | None = None
    lunch_start: time | None = None
    lunch_end: time | None = None

    @field_validator("weekday", mode="before")
    @classmethod
    def _normalize_weekday(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class ShiftCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    is_active: bool = True
    details: list[ShiftDayDetailInput]


class ShiftUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    is_active: bool | None = None
    details: list[ShiftDayDetailInput] | None = None


class ShiftDayDetailRead(BaseModel):
    weekday: Weekday
    is_working_day: bool
    entry_time: time | None = None
    exit_time: time | None = None
    lunch_start: time | None = None
    lunch_end: time | None = None

    model_config = ConfigDict(from_attributes=True)


class ShiftRead(BaseModel):
    id: int
    name: str
    description: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    details: list[ShiftDayDetailRead] = Field(default_factory=list)
    active_employee_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class ShiftDeleteResponse(BaseModel):
    ok: bool
    id: int


class GlobalSettingRead(BaseModel):
    key: str
    value: str
    description: str | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class GlobalSettingUpdate(BaseModel):
    value: bool | int | str


class EmployeeImportRow(BaseModel):
    cedula: str = Field(min_length=1, max_length=32)
    full_name: str = Field(min_length=1, max_length=255)
    position: str | None = Field(default=None, max_length=255)
    department: str | None = Field(default=None, max_length=255)
    entry_time: time = time(9, 0)
    exit_time: time = time(18, 0)
    lunch_start: time | None = None
    lunch_end: time | None = None
    shift_id: int | None = Field(default=None, ge=1)
    is_active: bool = True

    @model_validator(mode="after")
    def _validate_schedule(self) -> "EmployeeImportRow":
        self.cedula = self.cedula.strip()
        self.full_name = self.full_name.strip()
        if not self.cedula or not self.full_name:
            raise ValueError("cedula and full_name are required.")
        if self.entry_time >= self.exit_time:
            raise ValueError("entry_time must be before exit_time.")
        if (self.lunch_start is None) != (self.lunch_end is None):
            raise ValueError("lunch_start and lunch_end must be provided together.")
        if self.lunch_start is not None and self.lunch_end is not None:
            if not (self.entry_time <= self.lunch_start < self.lunch_end <= self.exit_time):
                raise ValueError("Lunch window must be inside the work schedule.")
        return self


class EmployeeImportRequest(BaseModel):
    employees: list[EmployeeImportRow] = Field(min_length=1)


class EmployeeImportError(BaseModel):
    row: int
    cedula: str
    message: str


class EmployeeImportResult(BaseModel):
    created: int
    updated: int
    errors: list[EmployeeImportError] = Field(default_factory=list)


class EmployeeShiftAssign(BaseModel):
    shift_id: int | None = Field(default=None, ge=1)
