"""Initial timeclock schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

shift_weekday = postgresql.ENUM(
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
    name="shift_weekday",
    create_type=False,
)
attendance_record_type = postgresql.ENUM(
    "entry",
    "exit",
    name="attendance_record_type",
    create_type=False,
)
attendance_capture_method = postgresql.ENUM(
    "manual",
    "qr",
    "biometric",
    name="attendance_capture_method",
    create_type=False,
)
audit_actor_type = postgresql.ENUM(
    "USER",
    "SYSTEM",
    name="audit_actor_type",
    create_type=False,
)

global_settings_table = sa.table(
    "global_settings",
    sa.column("key", sa.String),
    sa.column("value", sa.Text),
    sa.column("description", sa.Text),
)


def upgrade() -> None:
    bind = op.get_bind()
    shift_weekday.create(bind, checkfirst=True)
    attendance_record_type.create(bind, checkfirst=True)
    attendance_capture_method.create(bind, checkfirst=True)
    audit_actor_type.create(bind, checkfirst=True)

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("name", name="uq_shifts_name"),
    )

    op.create_table(
        "shift_day_details",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("weekday", shift_weekday, nullable=False),
        sa.Column("weekday_index", sa.Integer(), nullable=False),
        sa.Column("is_working_day", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("entry_time", sa.Time(), nullable=True),
        sa.Column("exit_time", sa.Time(), nullable=True),
        sa.Column("lunch_start", sa.Time(), nullable=True),
        sa.Column("lunch_end", sa.Time(), nullable=True),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("shift_id", "weekday", name="uq_shift_day_details_shift_weekday"),
        sa.CheckConstraint("weekday_index BETWEEN 0 AND 6", name="ck_shift_day_details_weekday_index"),
    )
    op.create_index("ix_shift_day_details_shift_id", "shift_day_details", ["shift_id"])

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("cedula", sa.String(length=32), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("position", sa.String(length=255), nullable=True),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("entry_time", sa.Time(), nullable=False, server_default=sa.text("'09:00:00'")),
        sa.Column("exit_time", sa.Time(), nullable=False, server_default=sa.text("'18:00:00'")),
        sa.Column("lunch_start", sa.Time(), nullable=True),
        sa.Column("lunch_end", sa.Time(), nullable=True),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_employees_cedula", "employees", ["cedula"], unique=True)
    op.create_index("ix_employees_shift_id", "employees", ["shift_id"])

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("type", attendance_record_type, nullable=False),
        sa.Column("record_date", sa.Date(), nullable=False),
        sa.Column("record_time", sa.Time(), nullable=False),
        sa.Column("method", attendance_capture_method, nullable=False),
        sa.Column("is_late", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_attendance_records_employee_id", "attendance_records", ["employee_id"])
    op.create_index("ix_attendance_records_record_date", "attendance_records", ["record_date"])
    op.create_index(
        "ix_attendance_records_employee_date",
        "attendance_records",
        ["employee_id", "record_date"],
    )

    op.create_table(
        "global_settings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_global_settings_key", "global_settings", ["key"], unique=True)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("ts_utc", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"])

    op.bulk_insert(
        global_settings_table,
        [
            {
                "key": "allow_multiple_attendance",
                "value": "false",
                "description": "Permitir multiples entradas y salidas por dia",
            },
            {
                "key": "attendance_tolerance_minutes",
                "value": "15",
                "description": "Minutos de tolerancia antes de marcar tardanza",
            },
        ],
    )


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_global_settings_key", table_name="global_settings")
    op.drop_table("global_settings")
    op.drop_index("ix_attendance_records_employee_date", table_name="attendance_records")
    op.drop_index("ix_attendance_records_record_date", table_name="attendance_records")
    op.drop_index("ix_attendance_records_employee_id", table_name="attendance_records")
    op.drop_table("attendance_records")
    op.drop_index("ix_employees_shift_id", table_name="employees")
    op.drop_index("ix_employees_cedula", table_name="employees")
    op.drop_table("employees")
    op.drop_index("ix_shift_day_details_shift_id", table_name="shift_day_details")
    op.drop_table("shift_day_details")
    op.drop_table("shifts")

    bind = op.get_bind()
    audit_actor_type.drop(bind, checkfirst=True)
    attendance_capture_method.drop(bind, checkfirst=True)
    attendance_record_type.drop(bind, checkfirst=True)
    shift_weekday.drop(bind, checkfirst=True)
