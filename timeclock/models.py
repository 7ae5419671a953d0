from __future__ import annotations

import enum
from datetime import date, datetime, time, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timeclock.db import Base


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class AttendanceType(str, enum.Enum):
    ENTRY = "entry"
    EXIT = "exit"

    def opposite(self) -> AttendanceType:
        if self is AttendanceType.ENTRY:
            return AttendanceType.EXIT
        return AttendanceType.ENTRY


class CaptureMethod(str, enum.Enum):
    MANUAL = "manual"
    QR = "qr"
    BIOMETRIC = "biometric"


class Weekday(str, enum.Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def ordered(cls) -> list[Weekday]:
        return list(cls)

    @classmethod
    def for_date(cls, day: date) -> Weekday:
        return cls.ordered()[day.weekday()]

    @property
    def ordinal(self) -> int:
        return Weekday.ordered().index(self)


class AuditActorType(str, enum.Enum):
    USER = "USER"
    SYSTEM = "SYSTEM"


_JSON_DOCUMENT = JSON().with_variant(JSONB(), "postgresql")


class Shift(Base):
    __tablename__ = "shifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    details: Mapped[list[ShiftDayDetail]] = relationship(
        back_populates="shift",
        cascade="all, delete-orphan",
        order_by="ShiftDayDetail.weekday_index",
    )
    employees: Mapped[list[Employee]] = relationship(back_populates="shift")

    def detail_for(self, weekday: Weekday) -> ShiftDayDetail | None:
        for detail in self.details:
            if detail.weekday == weekday:
                return detail
        return None


class ShiftDayDetail(Base):
    __tablename__ = "shift_day_details"
    __table_args__ = (
        UniqueConstraint("shift_id", "weekday", name="uq_shift_day_details_shift_weekday"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    shift_id: Mapped[int] = mapped_column(
        ForeignKey("shifts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    weekday: Mapped[Weekday] = mapped_column(
        Enum(Weekday, name="shift_weekday", values_callable=_enum_values),
        nullable=False,
    )
    weekday_index: Mapped[int] = mapped_column(Integer, nullable=False)
    is_working_day: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    entry_time: Mapped[time | None] = mapped_column(Time(timezone=False), nullable=True)
    exit_time: Mapped[time | None] = mapped_column(Time(timezone=False), nullable=True)
    lunch_start: Mapped[time | None] = mapped_column(Time(timezone=False), nullable=True)
    lunch_end: Mapped[time | None] = mapped_column(Time(timezone=False), nullable=True)

    shift: Mapped[Shift] = relationship(back_populates="details")


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cedula: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[str | None] = mapped_column(String(255), nullable=True)
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entry_time: Mapped[time] = mapped_column(
        Time(timezone=False),
        nullable=False,
        default=time(9, 0),
        server_default=text("'09:00:00'"),
    )
    exit_time: Mapped[time] = mapped_column(
        Time(timezone=False),
        nullable=False,
        default=time(18, 0),
        server_default=text("'18:00:00'"),
    )
    lunch_start: Mapped[time | None] = mapped_column(Time(timezone=False), nullable=True)
    lunch_end: Mapped[time | None] = mapped_column(Time(timezone=False), nullable=True)
    shift_id: Mapped[int | None] = mapped_column(
        ForeignKey("shifts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    shift: Mapped[Shift | None] = relationship(back_populates="employees")
    attendance_records: Mapped[list[AttendanceRecord]] = relationship(back_populates="employee")


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        Index("ix_attendance_records_employee_date", "employee_id", "record_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[AttendanceType] = mapped_column(
        Enum(AttendanceType, name="attendance_record_type", values_callable=_enum_values),
        nullable=False,
    )
    record_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    record_time: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    method: Mapped[CaptureMethod] = mapped_column(
        Enum(CaptureMethod, name="attendance_capture_method", values_callable=_enum_values),
        nullable=False,
        default=CaptureMethod.MANUAL,
    )
    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    employee: Mapped[Employee] = relationship(back_populates="attendance_records")


class GlobalSetting(Base):
    __tablename__ = "global_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    details: Mapped[dict[str, Any]] = mapped_column(
        _JSON_DOCUMENT,
        nullable=False,
        default=dict,
    )
