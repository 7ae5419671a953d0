from __future__ import annotations

import unittest
from datetime import date, time, timedelta

from tests.support import add_employee, add_record, add_shift, make_session_factory, weekly_details
from timeclock.errors import ApiError
from timeclock.models import AttendanceType, CaptureMethod, Weekday
from timeclock.services.journeys import (
    FLAG_DEFAULT_SCHEDULE_ASSUMED,
    FLAG_EXIT_BEFORE_ENTRY,
    aggregate_journeys,
    validate_range,
)

ENTRY = AttendanceType.ENTRY
EXIT = AttendanceType.EXIT
MONDAY = date(2024, 1, 8)
TUESDAY = date(2024, 1, 9)
SATURDAY = date(2024, 1, 13)


class ValidateRangeTests(unittest.TestCase):
    def test_reversed_range_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as exc:
            validate_range(TUESDAY, MONDAY)
        self.assertEqual(exc.exception.status_code, 422)
        self.assertEqual(exc.exception.code, "INVALID_DATE_RANGE")

    def test_range_limit(self) -> None:
        validate_range(MONDAY, MONDAY + timedelta(days=365))
        with self.assertRaises(ApiError) as exc:
            validate_range(MONDAY, MONDAY + timedelta(days=366))
        self.assertEqual(exc.exception.code, "DATE_RANGE_TOO_LARGE")

    def test_single_day_range_is_valid(self) -> None:
        validate_range(MONDAY, MONDAY)


class JourneyAggregationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.SessionLocal = make_session_factory()
        self.db = self.SessionLocal()
        self.ana = add_employee(self.db, cedula="1001", full_name="Ana Perez", department="Ventas")

    def tearDown(self) -> None:
        self.db.close()

    def _single(self, day: date = MONDAY, **kwargs):
        kwargs.setdefault("employee_ids", [self.ana.id])
        journeys = aggregate_journeys(self.db, start_date=day, end_date=day, **kwargs)
        self.assertEqual(len(journeys), 1)
        return journeys[0]

    def test_complete_day_computes_worked_and_overtime(self) -> None:
        add_record(self.db, self.ana, ENTRY, MONDAY, time(8, 50), method=CaptureMethod.QR)
        add_record(self.db, self.ana, EXIT, MONDAY, time(19, 10))

        journey = self._single()
        self.assertEqual(journey.status, "COMPLETE")
        self.assertEqual(journey.worked_minutes, 620)
        self.assertEqual(journey.scheduled_minutes, 540)
        self.assertEqual(journey.overtime_minutes, 80)
        self.assertEqual(journey.completed_pairs, 1)
        self.assertEqual(journey.method, CaptureMethod.QR)
        self.assertEqual(journey.department, "Ventas")
        self.assertTrue(journey.attended)
        self.assertEqual(journey.flags, ())

    def test_short_day_has_no_overtime(self) -> None:
        add_record(self.db, self.ana, ENTRY, MONDAY, time(9, 0))
        add_record(self.db, self.ana, EXIT, MONDAY, time(13, 0))
        journey = self._single()
        self.assertEqual(journey.worked_minutes, 240)
        self.assertEqual(journey.overtime_minutes, 0)

    def test_entry_without_exit_is_open(self) -> None:
        add_record(self.db, self.ana, ENTRY, MONDAY, time(9, 0))
        journey = self._single()
        self.assertEqual(journey.status, "OPEN")
        self.assertEqual(journey.entry_time, time(9, 0))
        self.assertIsNone(journey.exit_time)
        self.assertEqual(journey.worked_minutes, 0)

    def test_working_day_without_records_is_absent(self) -> None:
        journey = self._single()
        self.assertEqual(journey.status, "ABSENT")
        self.assertFalse(journey.attended)
        self.assertEqual(journey.scheduled_minutes, 540)

    def test_non_working_shift_day_without_records_is_off(self) -> None:
        shift = add_shift(self.db, "Weekdays")
        luis = add_employee(self.db, cedula="2002", full_name="Luis Gomez", shift=shift)
        journey = self._single(SATURDAY, employee_ids=[luis.id])
        self.assertEqual(journey.status, "OFF")
        self.assertFalse(journey.is_working_day)
        self.assertEqual(journey.scheduled_minutes, 0)

    def test_work_on_day_off_counts_entirely_as_overtime(self) -> None:
        shift = add_shift(self.db, "Weekdays")
        luis = add_employee(self.db, cedula="2002", full_name="Luis Gomez", shift=shift)
        add_record(self.db, luis, ENTRY, SATURDAY, time(9, 0))
        add_record(self.db, luis, EXIT, SATURDAY, time(12, 0))

        journey = self._single(SATURDAY, employee_ids=[luis.id])
        self.assertEqual(journey.status, "COMPLETE")
        self.assertEqual(journey.overtime_minutes, 180)

    def test_exit_before_entry_is_flagged_and_clamped(self) -> None:
        add_record(self.db, self.ana, EXIT, MONDAY, time(6, 0))
        add_record(self.db, self.ana, ENTRY, MONDAY, time(22, 0))

        with self.assertLogs("timeclock.journeys", level="WARNING"):
            journey = self._single()
        self.assertEqual(journey.status, "COMPLETE")
        self.assertEqual(journey.worked_minutes, 0)
        self.assertEqual(journey.overtime_minutes, 0)
        self.assertIn(FLAG_EXIT_BEFORE_ENTRY, journey.flags)

    def test_strict_pairing_uses_first_entry_and_first_exit(self) -> None:
        add_record(self.db, self.ana, ENTRY, MONDAY, time(8, 0))
        add_record(self.db, self.ana, EXIT, MONDAY, time(12, 0))
        add_record(self.db, self.ana, ENTRY, MONDAY, time(13, 0))
        add_record(self.db, self.ana, EXIT, MONDAY, time(20, 0))

        journey = self._single(allow_multiple=False)
        self.assertEqual(journey.entry_time, time(8, 0))
        self.assertEqual(journey.exit_time, time(12, 0))
        self.assertEqual(journey.worked_minutes, 240)

    def test_flexible_pairing_uses_last_completed_pair(self) -> None:
        add_record(self.db, self.ana, ENTRY, MONDAY, time(8, 0))
        add_record(self.db, self.ana, EXIT, MONDAY, time(12, 0))
        add_record(self.db, self.ana, ENTRY, MONDAY, time(13, 0))
        add_record(self.db, self.ana, EXIT, MONDAY, time(17, 30))
        add_record(self.db, self.ana, ENTRY, MONDAY, time(19, 0))

        journey = self._single(allow_multiple=True)
        self.assertEqual(journey.status, "COMPLETE")
        self.assertEqual(journey.entry_time, time(13, 0))
        self.assertEqual(journey.exit_time, time(17, 30))
        self.assertEqual(journey.worked_minutes, 270)
        self.assertEqual(journey.completed_pairs, 2)
        self.assertEqual(journey.arrival_time, time(8, 0))

    def test_flexible_day_without_completed_pair_is_open(self) -> None:
        add_record(self.db, self.ana, ENTRY, MONDAY, time(8, 0))
        journey = self._single(allow_multiple=True)
        self.assertEqual(journey.status, "OPEN")
        self.assertEqual(journey.completed_pairs, 0)

    def test_missing_schedule_times_assume_default_length(self) -> None:
        details = weekly_details()
        for detail in details:
            if detail.weekday == Weekday.MONDAY:
                detail.entry_time = None
                detail.exit_time = None
        shift = add_shift(self.db, "Loose", details=details)
        luis = add_employee(self.db, cedula="2002", full_name="Luis Gomez", shift=shift)
        add_record(self.db, luis, ENTRY, MONDAY, time(8, 0))
        add_record(self.db, luis, EXIT, MONDAY, time(18, 0))

        journey = self._single(employee_ids=[luis.id], default_scheduled_minutes=540)
        self.assertEqual(journey.scheduled_minutes, 540)
        self.assertEqual(journey.overtime_minutes, 60)
        self.assertIn(FLAG_DEFAULT_SCHEDULE_ASSUMED, journey.flags)

    def test_lateness_comes_from_first_entry(self) -> None:
        add_record(self.db, self.ana, ENTRY, MONDAY, time(9, 20), is_late=True)
        add_record(self.db, self.ana, EXIT, MONDAY, time(18, 0))

        journey = self._single(tolerance_minutes=15)
        self.assertTrue(journey.is_late)
        self.assertEqual(journey.minutes_late, 5)
        self.assertEqual(journey.scheduled_entry_time, time(9, 0))

    def test_entry_not_flagged_late_reports_zero_minutes(self) -> None:
        add_record(self.db, self.ana, ENTRY, MONDAY, time(9, 40), is_late=False)
        journey = self._single(tolerance_minutes=15)
        self.assertFalse(journey.is_late)
        self.assertEqual(journey.minutes_late, 0)

    def test_defaults_to_active_employees_sorted_by_day_then_name(self) -> None:
        add_employee(self.db, cedula="3003", full_name="Zoe Ruiz")
        add_employee(self.db, cedula="4004", full_name="Inactivo", is_active=False)

        journeys = aggregate_journeys(self.db, start_date=MONDAY, end_date=TUESDAY)
        self.assertEqual(
            [(item.day, item.employee_name) for item in journeys],
            [
                (MONDAY, "Ana Perez"),
                (MONDAY, "Zoe Ruiz"),
                (TUESDAY, "Ana Perez"),
                (TUESDAY, "Zoe Ruiz"),
            ],
        )

    def test_aggregation_is_repeatable(self) -> None:
        add_record(self.db, self.ana, ENTRY, MONDAY, time(8, 50))
        add_record(self.db, self.ana, EXIT, MONDAY, time(19, 10))
        add_record(self.db, self.ana, ENTRY, TUESDAY, time(9, 30), is_late=True)

        first = aggregate_journeys(self.db, start_date=MONDAY, end_date=TUESDAY)
        second = aggregate_journeys(self.db, start_date=MONDAY, end_date=TUESDAY)
        self.assertEqual(first, second)


if __name__ == "__main__":
    unittest.main()
