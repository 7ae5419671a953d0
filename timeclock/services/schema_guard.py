from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, select, text
from sqlalchemy.engine import Engine

from timeclock.models import GlobalSetting
from timeclock.services.global_settings import SETTING_DEFINITIONS


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "employees": {"id", "cedula", "entry_time", "exit_time", "shift_id", "is_active"},
    "shifts": {"id", "name", "is_active"},
    "shift_day_details": {"id", "shift_id", "weekday", "is_working_day", "entry_time", "exit_time"},
    "attendance_records": {"id", "employee_id", "type", "record_date", "record_time", "method", "is_late"},
    "global_settings": {"id", "key", "value"},
    "alembic_version": {"version_num"},
}


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        try:
            column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except Exception as exc:  # pragma: no cover
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue

        missing_columns = sorted(item for item in required_columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
            version = str(row).strip() if row is not None else ""
            if not version:
                issues.append("ALEMBIC_VERSION_EMPTY")
    except Exception as exc:  # pragma: no cover
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")

    try:
        with engine.connect() as connection:
            present_keys = set(connection.execute(select(GlobalSetting.key)).scalars().all())
    except Exception as exc:  # pragma: no cover
        warnings.append(f"SETTINGS_CHECK_FAILED:{exc.__class__.__name__}")
    else:
        # Missing rows fall back to defaults, so they only warn.
        for key in sorted(SETTING_DEFINITIONS):
            if key not in present_keys:
                warnings.append(f"SETTING_NOT_SEEDED:{key}")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )
