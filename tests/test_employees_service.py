from __future__ import annotations

import unittest
from datetime import time

from pydantic import ValidationError

from tests.support import add_employee, add_shift, make_session_factory
from timeclock.errors import ApiError
from timeclock.models import Employee
from timeclock.schemas import EmployeeImportRow
from timeclock.services.employees import assign_shift, get_employee, import_employees
from timeclock.services.events import EMPLOYEES_IMPORTED_TOPIC, RecordingEventPublisher


class EmployeeImportRowTests(unittest.TestCase):
    def test_defaults_and_trimming(self) -> None:
        row = EmployeeImportRow(cedula=" 1001 ", full_name=" Ana Perez ")
        self.assertEqual(row.cedula, "1001")
        self.assertEqual(row.full_name, "Ana Perez")
        self.assertEqual(row.entry_time, time(9, 0))
        self.assertEqual(row.exit_time, time(18, 0))

    def test_schedule_must_be_consistent(self) -> None:
        with self.assertRaises(ValidationError):
            EmployeeImportRow(cedula="1", full_name="A", entry_time=time(18, 0), exit_time=time(9, 0))
        with self.assertRaises(ValidationError):
            EmployeeImportRow(cedula="1", full_name="A", lunch_start=time(12, 0))
        with self.assertRaises(ValidationError):
            EmployeeImportRow(cedula="1", full_name="A", lunch_start=time(19, 0), lunch_end=time(20, 0))


class EmployeeServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.SessionLocal = make_session_factory()
        self.db = self.SessionLocal()
        self.publisher = RecordingEventPublisher()

    def tearDown(self) -> None:
        self.db.close()

    def test_import_creates_and_updates_by_cedula(self) -> None:
        add_employee(self.db, cedula="1001", full_name="Ana Vieja")
        shift = add_shift(self.db, "Morning")
        rows = [
            EmployeeImportRow(cedula="1001", full_name="Ana Perez", department="Ventas"),
            EmployeeImportRow(cedula="2002", full_name="Luis Gomez", shift_id=shift.id),
        ]

        result = import_employees(self.db, rows, publisher=self.publisher)

        self.assertEqual(result.created, 1)
        self.assertEqual(result.updated, 1)
        self.assertEqual(result.errors, [])
        ana = self.db.query(Employee).filter_by(cedula="1001").one()
        self.assertEqual(ana.full_name, "Ana Perez")
        self.assertEqual(ana.department, "Ventas")
        luis = self.db.query(Employee).filter_by(cedula="2002").one()
        self.assertEqual(luis.shift_id, shift.id)

        self.assertEqual(self.publisher.topics(), [EMPLOYEES_IMPORTED_TOPIC])
        _, payload = self.publisher.events[0]
        self.assertEqual(payload, {"created": 1, "updated": 1, "failed": 0, "cedulas": ["1001", "2002"]})

    def test_import_reports_bad_rows_and_keeps_good_ones(self) -> None:
        rows = [
            EmployeeImportRow(cedula="1001", full_name="Ana Perez"),
            EmployeeImportRow(cedula="1001", full_name="Ana Duplicada"),
            EmployeeImportRow(cedula="3003", full_name="Sin Turno", shift_id=999),
        ]

        result = import_employees(self.db, rows, publisher=self.publisher)

        self.assertEqual(result.created, 1)
        self.assertEqual([(error.row, error.cedula) for error in result.errors], [(2, "1001"), (3, "3003")])
        self.assertEqual(self.db.query(Employee).count(), 1)
        self.assertEqual(self.db.query(Employee).one().full_name, "Ana Perez")

    def test_import_refuses_active_employee_on_inactive_shift(self) -> None:
        shift = add_shift(self.db, "Noche", is_active=False)
        rows = [
            EmployeeImportRow(cedula="9", full_name="Nora Vega", shift_id=shift.id),
            EmployeeImportRow(cedula="10", full_name="Baja", shift_id=shift.id, is_active=False),
        ]

        result = import_employees(self.db, rows, publisher=self.publisher)

        self.assertEqual(result.created, 1)
        self.assertEqual(
            [(error.row, error.cedula, error.message) for error in result.errors],
            [(1, "9", "Turno inactivo.")],
        )
        self.assertIsNone(self.db.query(Employee).filter_by(cedula="9").one_or_none())
        self.assertEqual(self.db.query(Employee).filter_by(cedula="10").one().shift_id, shift.id)

    def test_get_unknown_employee(self) -> None:
        with self.assertRaises(ApiError) as exc:
            get_employee(self.db, 404)
        self.assertEqual(exc.exception.status_code, 404)

    def test_assign_and_clear_shift(self) -> None:
        employee = add_employee(self.db, cedula="1001", full_name="Ana Perez")
        shift = add_shift(self.db, "Morning")

        self.assertEqual(assign_shift(self.db, employee.id, shift.id).shift_id, shift.id)
        self.assertIsNone(assign_shift(self.db, employee.id, None).shift_id)

    def test_assign_inactive_shift_conflicts(self) -> None:
        employee = add_employee(self.db, cedula="1001", full_name="Ana Perez")
        shift = add_shift(self.db, "Old", is_active=False)
        with self.assertRaises(ApiError) as exc:
            assign_shift(self.db, employee.id, shift.id)
        self.assertEqual(exc.exception.status_code, 409)
        self.assertEqual(exc.exception.code, "SHIFT_INACTIVE")

    def test_assign_unknown_shift(self) -> None:
        employee = add_employee(self.db, cedula="1001", full_name="Ana Perez")
        with self.assertRaises(ApiError) as exc:
            assign_shift(self.db, employee.id, 999)
        self.assertEqual(exc.exception.code, "SHIFT_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
