from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from timeclock.errors import ApiError
from timeclock.models import GlobalSetting
from timeclock.services.cycle_policy import CyclePolicyConfig
from timeclock.settings import get_settings

logger = logging.getLogger("timeclock.global_settings")

ALLOW_MULTIPLE_ATTENDANCE = "allow_multiple_attendance"
ATTENDANCE_TOLERANCE_MINUTES = "attendance_tolerance_minutes"

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


@dataclass(frozen=True)
class SettingDefinition:
    key: str
    kind: str
    default: str
    description: str


SETTING_DEFINITIONS: dict[str, SettingDefinition] = {
    ALLOW_MULTIPLE_ATTENDANCE: SettingDefinition(
        key=ALLOW_MULTIPLE_ATTENDANCE,
        kind="bool",
        default="false",
        description="Permitir multiples entradas y salidas por dia",
    ),
    ATTENDANCE_TOLERANCE_MINUTES: SettingDefinition(
        key=ATTENDANCE_TOLERANCE_MINUTES,
        kind="int",
        default="15",
        description="Minutos de tolerancia antes de marcar tardanza",
    ),
}


def parse_bool(raw: str | None, *, default: bool = False) -> bool:
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return default


def parse_int(raw: str | None, *, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _get_row(db: Session, key: str) -> GlobalSetting | None:
    return db.scalar(select(GlobalSetting).where(GlobalSetting.key == key))


def read_raw(db: Session, key: str) -> str | None:
    row = _get_row(db, key)
    if row is None:
        return None
    return row.value


def read_cycle_policy(db: Session) -> CyclePolicyConfig:
    # Read on every call; the flag switches the classification branch.
    allow_multiple = parse_bool(read_raw(db, ALLOW_MULTIPLE_ATTENDANCE), default=False)
    return CyclePolicyConfig(allow_multiple=allow_multiple)


def read_tolerance_minutes(db: Session) -> int:
    fallback = get_settings().lateness_tolerance_minutes
    value = parse_int(read_raw(db, ATTENDANCE_TOLERANCE_MINUTES), default=fallback)
    if value < 0:
        return fallback
    return value


def list_settings(db: Session) -> list[GlobalSetting]:
    rows = {row.key: row for row in db.scalars(select(GlobalSetting)).all()}
    result: list[GlobalSetting] = []
    for key, definition in SETTING_DEFINITIONS.items():
        row = rows.pop(key, None)
        if row is None:
            row = GlobalSetting(key=key, value=definition.default, description=definition.description)
        result.append(row)
    result.extend(sorted(rows.values(), key=lambda item: item.key))
    return result


def get_setting(db: Session, key: str) -> GlobalSetting:
    row = _get_row(db, key)
    if row is not None:
        return row
    definition = SETTING_DEFINITIONS.get(key)
    if definition is None:
        raise ApiError(status_code=404, code="SETTING_NOT_FOUND", message="Configuracion no encontrada.")
    return GlobalSetting(key=key, value=definition.default, description=definition.description)


def _normalize_value(definition: SettingDefinition | None, value: object) -> str:
    if definition is None:
        return str(value)
    if definition.kind == "bool":
        if isinstance(value, bool):
            return "true" if value else "false"
        raw = str(value).strip().lower()
        if raw in _TRUE_VALUES:
            return "true"
        if raw in _FALSE_VALUES:
            return "false"
        raise ApiError(
            status_code=422,
            code="INVALID_SETTING_VALUE",
            message=f"El valor de {definition.key} debe ser booleano.",
        )
    if isinstance(value, bool):
        raise ApiError(
            status_code=422,
            code="INVALID_SETTING_VALUE",
            message=f"El valor de {definition.key} debe ser un entero.",
        )
    try:
        parsed = int(str(value).strip())
    except ValueError as exc:
        raise ApiError(
            status_code=422,
            code="INVALID_SETTING_VALUE",
            message=f"El valor de {definition.key} debe ser un entero.",
        ) from exc
    if parsed < 0:
        raise ApiError(
            status_code=422,
            code="INVALID_SETTING_VALUE",
            message=f"El valor de {definition.key} no puede ser negativo.",
        )
    return str(parsed)


def update_setting(db: Session, key: str, value: object) -> tuple[GlobalSetting, str | None]:
    """Persist a new value for ``key`` and return the row with its previous value.

    Unknown keys are refused; known keys are validated against their kind.
    """
    definition = SETTING_DEFINITIONS.get(key)
    if definition is None:
        raise ApiError(status_code=404, code="SETTING_NOT_FOUND", message="Configuracion no encontrada.")

    normalized = _normalize_value(definition, value)
    row = _get_row(db, key)
    previous = row.value if row is not None else None
    if row is None:
        row = GlobalSetting(key=key, value=normalized, description=definition.description)
        db.add(row)
    else:
        row.value = normalized
    db.commit()
    db.refresh(row)
    logger.info(
        "global_setting_updated",
        extra={"key": key, "previous_value": previous, "value": normalized},
    )
    return row, previous
