from __future__ import annotations

import unittest
from datetime import date, datetime, time
from unittest.mock import patch
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from tests.support import add_employee, add_record, add_shift, make_session_factory, set_setting, weekly_details
from timeclock.errors import (
    DailyLimitReached,
    EmployeeInactive,
    EmployeeNotFound,
    InvalidSequence,
    PersistenceFailure,
    ScheduleNotFound,
)
from timeclock.models import AttendanceRecord, AttendanceType, CaptureMethod, Weekday
from timeclock.services.attendance import (
    RecordingUnitOfWork,
    employee_lock_statement,
    local_now,
    record_attendance,
)
from timeclock.services.events import ATTENDANCE_NEW_TOPIC, RecordingEventPublisher
from timeclock.services.global_settings import ALLOW_MULTIPLE_ATTENDANCE, ATTENDANCE_TOLERANCE_MINUTES

BOGOTA = ZoneInfo("America/Bogota")
MONDAY = date(2024, 1, 8)
SATURDAY = date(2024, 1, 13)


def at(day: date, hour: int, minute: int, second: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=BOGOTA)


class _ExplodingPublisher:
    def publish(self, topic: str, payload: dict) -> None:
        raise RuntimeError("broker unavailable")


class LocalClockTests(unittest.TestCase):
    def test_naive_reference_is_treated_as_utc(self) -> None:
        result = local_now(datetime(2024, 1, 8, 14, 0))
        self.assertEqual(result.hour, 9)
        self.assertEqual(result.date(), MONDAY)

    def test_utc_midnight_is_previous_local_day(self) -> None:
        result = local_now(datetime(2024, 1, 9, 3, 0))
        self.assertEqual(result.date(), MONDAY)


class RecordAttendanceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.SessionLocal = make_session_factory()
        self.db = self.SessionLocal()
        self.publisher = RecordingEventPublisher()
        self.employee = add_employee(self.db, cedula="1001", full_name="Ana Perez")

    def tearDown(self) -> None:
        self.db.close()

    def _record(self, when: datetime, **kwargs):
        kwargs.setdefault("cedula", "1001")
        kwargs.setdefault("method", CaptureMethod.MANUAL)
        return record_attendance(self.db, publisher=self.publisher, now=when, **kwargs)

    def _count_records(self) -> int:
        return int(self.db.scalar(select(func.count()).select_from(AttendanceRecord)) or 0)

    def test_strict_day_is_entry_then_exit_then_rejected(self) -> None:
        entry = self._record(at(MONDAY, 8, 55))
        exit_ = self._record(at(MONDAY, 18, 5))

        self.assertEqual(entry.record.type, AttendanceType.ENTRY)
        self.assertEqual(exit_.record.type, AttendanceType.EXIT)
        self.assertEqual(entry.message, "Ana Perez - Entrada registrada")
        self.assertEqual(exit_.message, "Ana Perez - Salida registrada")

        with self.assertRaises(DailyLimitReached) as exc:
            self._record(at(MONDAY, 18, 30))
        self.assertEqual(exc.exception.status_code, 400)
        self.assertEqual(self._count_records(), 2)

    def test_new_day_starts_a_new_cycle(self) -> None:
        self._record(at(MONDAY, 8, 55))
        self._record(at(MONDAY, 18, 5))
        result = self._record(at(date(2024, 1, 9), 8, 50))
        self.assertEqual(result.record.type, AttendanceType.ENTRY)
        self.assertEqual(result.record.record_date, date(2024, 1, 9))

    def test_day_opened_with_exit_is_rejected_as_invalid_sequence(self) -> None:
        add_record(self.db, self.employee, AttendanceType.EXIT, MONDAY, time(8, 0))
        with self.assertRaises(InvalidSequence) as exc:
            self._record(at(MONDAY, 9, 0))
        self.assertEqual(exc.exception.code, "INVALID_SEQUENCE")
        self.assertEqual(self._count_records(), 1)

    def test_flexible_mode_alternates_without_limit(self) -> None:
        set_setting(self.db, ALLOW_MULTIPLE_ATTENDANCE, "true")
        moments = [(8, 0), (12, 0), (13, 0), (17, 0), (19, 0), (21, 0)]
        types = [self._record(at(MONDAY, hour, minute)).record.type for hour, minute in moments]
        self.assertEqual(
            types,
            [AttendanceType.ENTRY, AttendanceType.EXIT] * 3,
        )
        self.assertEqual(self._count_records(), 6)

    def test_policy_flag_is_read_on_every_call(self) -> None:
        self._record(at(MONDAY, 8, 0))
        self._record(at(MONDAY, 12, 0))
        with self.assertRaises(DailyLimitReached):
            self._record(at(MONDAY, 13, 0))

        set_setting(self.db, ALLOW_MULTIPLE_ATTENDANCE, "true")
        result = self._record(at(MONDAY, 13, 0))
        self.assertEqual(result.record.type, AttendanceType.ENTRY)

    def test_suggested_type_is_advisory(self) -> None:
        result = self._record(at(MONDAY, 8, 0), suggested_type=AttendanceType.EXIT)
        self.assertEqual(result.record.type, AttendanceType.ENTRY)
        self.assertTrue(result.suggestion_overridden)

    def test_late_entry_outside_tolerance(self) -> None:
        result = self._record(at(MONDAY, 9, 20))
        self.assertTrue(result.record.is_late)
        self.assertEqual(result.lateness.minutes_late, 5)
        self.assertEqual(result.message, "Ana Perez - Entrada registrada (Tardanza)")

    def test_entry_within_tolerance_is_on_time(self) -> None:
        result = self._record(at(MONDAY, 9, 14, 59))
        self.assertFalse(result.record.is_late)
        self.assertEqual(result.record.record_time, time(9, 14, 59))

    def test_tolerance_setting_overrides_default(self) -> None:
        set_setting(self.db, ATTENDANCE_TOLERANCE_MINUTES, "5")
        result = self._record(at(MONDAY, 9, 10))
        self.assertTrue(result.record.is_late)
        self.assertEqual(result.lateness.minutes_late, 5)

    def test_exit_is_never_late(self) -> None:
        self._record(at(MONDAY, 9, 0))
        result = self._record(at(MONDAY, 23, 0))
        self.assertFalse(result.record.is_late)

    def test_shift_schedule_drives_lateness(self) -> None:
        shift = add_shift(self.db, "Early", details=weekly_details(entry=time(7, 0), exit_=time(15, 0)))
        add_employee(self.db, cedula="2002", full_name="Luis Gomez", shift=shift)

        result = self._record(at(MONDAY, 7, 30), cedula="2002")
        self.assertTrue(result.record.is_late)
        self.assertEqual(result.lateness.minutes_late, 15)

    def test_entry_on_non_working_shift_day_is_not_late(self) -> None:
        shift = add_shift(self.db, "Weekdays")
        add_employee(self.db, cedula="2002", full_name="Luis Gomez", shift=shift)

        result = self._record(at(SATURDAY, 11, 0), cedula="2002")
        self.assertEqual(result.record.type, AttendanceType.ENTRY)
        self.assertFalse(result.record.is_late)

    def test_missing_shift_detail_rejects_without_persisting(self) -> None:
        shift = add_shift(self.db, "Broken", details=weekly_details(skip=(Weekday.MONDAY,)))
        add_employee(self.db, cedula="2002", full_name="Luis Gomez", shift=shift)

        with self.assertRaises(ScheduleNotFound):
            self._record(at(MONDAY, 8, 0), cedula="2002")
        self.assertEqual(self._count_records(), 0)
        self.assertEqual(self.publisher.events, [])

    def test_unknown_cedula_is_rejected(self) -> None:
        with self.assertRaises(EmployeeNotFound) as exc:
            self._record(at(MONDAY, 8, 0), cedula="9999")
        self.assertEqual(exc.exception.status_code, 404)

    def test_cedula_is_trimmed(self) -> None:
        result = self._record(at(MONDAY, 8, 0), cedula="  1001 ")
        self.assertEqual(result.employee.id, self.employee.id)

    def test_inactive_employee_is_rejected(self) -> None:
        add_employee(self.db, cedula="3003", full_name="Rosa Diaz", is_active=False)
        with self.assertRaises(EmployeeInactive) as exc:
            self._record(at(MONDAY, 8, 0), cedula="3003")
        self.assertEqual(exc.exception.status_code, 403)
        self.assertEqual(self._count_records(), 0)

    def test_storage_failure_persists_nothing(self) -> None:
        failure = OperationalError("INSERT INTO attendance_records", {}, Exception("database is down"))
        with patch.object(RecordingUnitOfWork, "commit", side_effect=failure):
            with self.assertRaises(PersistenceFailure) as exc:
                self._record(at(MONDAY, 8, 0))
        self.assertEqual(exc.exception.status_code, 503)
        self.assertEqual(self._count_records(), 0)
        self.assertEqual(self.publisher.events, [])

    def test_event_is_published_after_commit(self) -> None:
        result = self._record(at(MONDAY, 9, 20), method=CaptureMethod.QR)
        self.assertEqual(self.publisher.topics(), [ATTENDANCE_NEW_TOPIC])
        _, payload = self.publisher.events[0]
        self.assertEqual(payload["employee_id"], self.employee.id)
        self.assertEqual(payload["employee_name"], "Ana Perez")
        self.assertEqual(payload["cedula"], "1001")
        self.assertEqual(payload["type"], "entry")
        self.assertEqual(payload["date"], "2024-01-08")
        self.assertEqual(payload["time"], "09:20:00")
        self.assertEqual(payload["method"], "qr")
        self.assertTrue(payload["late"])
        self.assertEqual(payload["minutes_late"], 5)
        self.assertIsNotNone(result.record.id)

    def test_publisher_failure_does_not_fail_the_request(self) -> None:
        with self.assertLogs("timeclock.events", level="ERROR") as logs:
            result = record_attendance(
                self.db,
                cedula="1001",
                method=CaptureMethod.MANUAL,
                publisher=_ExplodingPublisher(),
                now=at(MONDAY, 8, 0),
            )
        self.assertEqual(result.record.type, AttendanceType.ENTRY)
        self.assertEqual(self._count_records(), 1)
        self.assertTrue(any("event_publish_failed" in line for line in logs.output))

    def test_history_read_and_insert_run_under_the_employee_lock(self) -> None:
        calls: list[tuple[str, int]] = []
        lock_employee = RecordingUnitOfWork.lock_employee
        types_recorded_on = RecordingUnitOfWork.types_recorded_on
        commit = RecordingUnitOfWork.commit

        def _lock(uow, cedula):
            calls.append(("lock", id(uow)))
            return lock_employee(uow, cedula)

        def _history(uow, employee_id, day):
            calls.append(("history", id(uow)))
            return types_recorded_on(uow, employee_id, day)

        def _commit(uow):
            calls.append(("commit", id(uow)))
            commit(uow)

        with patch.object(RecordingUnitOfWork, "lock_employee", _lock), patch.object(
            RecordingUnitOfWork, "types_recorded_on", _history
        ), patch.object(RecordingUnitOfWork, "commit", _commit):
            self._record(at(MONDAY, 8, 0))

        self.assertEqual([name for name, _ in calls], ["lock", "history", "commit"])
        self.assertEqual(len({uow_id for _, uow_id in calls}), 1)


class EmployeeLockStatementTests(unittest.TestCase):
    def test_lookup_locks_the_employee_row_on_postgres(self) -> None:
        compiled = str(employee_lock_statement("1001").compile(dialect=postgresql.dialect()))
        self.assertIn("FOR UPDATE", compiled)
        self.assertIn("employees.cedula", compiled)


if __name__ == "__main__":
    unittest.main()
