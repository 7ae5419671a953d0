#!/usr/bin/env python
from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import create_engine, text

from timeclock.settings import get_settings

EXPECTED_HEAD = "0001_initial"
REQUIRED_TABLES = (
    "employees",
    "shifts",
    "shift_day_details",
    "attendance_records",
    "global_settings",
    "audit_logs",
)


def run() -> dict:
    database_url = get_settings().database_url
    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    with engine.connect() as conn:
        tables = set(
            conn.execute(
                text(
                    """
                    select table_name
                    from information_schema.tables
                    where table_schema='public'
                    """
                )
            ).scalars()
        )

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        missing_tables = [table for table in REQUIRED_TABLES if table not in tables]
        add("missing_tables", "fail" if missing_tables else "ok", {"tables": missing_tables})
        if missing_tables:
            return report

        # A shift without all seven weekday rows makes schedule resolution fail.
        incomplete_shifts = conn.execute(
            text(
                """
                select s.id, s.name, count(d.id)
                from shifts s
                left join shift_day_details d on d.shift_id = s.id
                group by s.id, s.name
                having count(d.id) <> 7
                """
            )
        ).fetchall()
        add(
            "shift_missing_weekdays",
            "fail" if incomplete_shifts else "ok",
            {"rows": [list(row) for row in incomplete_shifts]},
        )

        inactive_shift_employees = conn.execute(
            text(
                """
                select e.id, e.cedula, s.id
                from employees e
                join shifts s on s.id = e.shift_id
                where e.is_active = true and s.is_active = false
                limit 20
                """
            )
        ).fetchall()
        add(
            "active_employee_on_inactive_shift",
            "warn" if inactive_shift_employees else "ok",
            {"rows": [list(row) for row in inactive_shift_employees]},
        )

        over_limit_days = conn.execute(
            text(
                """
                select employee_id, record_date, count(*)
                from attendance_records
                group by employee_id, record_date
                having count(*) > 2
                limit 20
                """
            )
        ).fetchall()
        add(
            "days_with_multiple_journeys",
            "warn" if over_limit_days else "ok",
            {"sample": [[row[0], str(row[1]), row[2]] for row in over_limit_days]},
        )

        seeded_settings = set(conn.execute(text("select key from global_settings")).scalars())
        missing_settings = sorted(
            {"allow_multiple_attendance", "attendance_tolerance_minutes"} - seeded_settings
        )
        add("global_settings_seeded", "warn" if missing_settings else "ok", {"missing": missing_settings})

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
