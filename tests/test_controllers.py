import tempfile
import unittest
from datetime import datetime, time, timedelta
from pathlib import Path
from unittest.mock import patch

from controllers import (
    AdminController,
    DoctorController,
    PatientController,
    PharmacistController,
    controller_for,
    register_patient,
)
from stores import (
    AppointmentStatus,
    AuthorizationError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    PrescriptionStatus,
    ReplenishStatus,
    Role,
    SlotUnavailableError,
    TerminalStateError,
    ValidationError,
)

from tests.helpers import open_seeded_database


def _future(days: int, hour: int = 9) -> datetime:
    return (datetime.now() + timedelta(days=days)).replace(hour=hour, minute=0, second=0, microsecond=0)


class ControllerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.database = open_seeded_database(Path(self._tmp.name))
        users = self.database.users
        self.alice = PatientController(users.get("p00001"), self.database)
        self.bob = PatientController(users.get("p00002"), self.database)
        self.doctor = DoctorController(users.get("DOC00001"), self.database)
        self.other_doctor = DoctorController(users.get("DOC00002"), self.database)
        self.pharmacist = PharmacistController(users.get("PHM00001"), self.database)
        self.admin = AdminController(users.get("ADM00001"), self.database)

    def tearDown(self) -> None:
        self._tmp.cleanup()


class RoleCheckTests(ControllerTestCase):
    def test_controller_for_matches_role(self) -> None:
        self.assertIsInstance(controller_for(self.database.users.get("PHM00001"), self.database), PharmacistController)
        self.assertIsInstance(controller_for(self.database.users.get("p00002"), self.database), PatientController)

    def test_wrong_role_is_rejected(self) -> None:
        with self.assertRaises(AuthorizationError):
            AdminController(self.database.users.get("DOC00001"), self.database)


class PatientControllerTests(ControllerTestCase):
    def test_book_and_list_appointments(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00001", _future(3))

        appointments = self.alice.appointments()
        self.assertEqual([item.appointment_id for item in appointments], [appointment_id])
        self.assertEqual(appointments[0].status, AppointmentStatus.PENDING)
        self.assertEqual(self.bob.appointments(), [])

    def test_book_requires_existing_doctor_and_future_time(self) -> None:
        with self.assertRaises(NotFoundError):
            self.alice.schedule_appointment("PHM00001", _future(3))
        with self.assertRaises(ValidationError):
            self.alice.schedule_appointment("DOC00001", datetime.now() - timedelta(hours=1))

    def test_cannot_touch_other_patients_appointments(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00001", _future(3))

        with self.assertRaises(AuthorizationError):
            self.bob.cancel_appointment(appointment_id)
        with self.assertRaises(AuthorizationError):
            self.bob.pay_bill(appointment_id)

    def test_reschedule_returns_confirmed_appointment_to_pending(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00001", _future(3))
        self.doctor.accept(appointment_id)

        moved = self.alice.reschedule_appointment(appointment_id, _future(4))

        self.assertEqual(moved.date_time, _future(4))
        self.assertEqual(moved.status, AppointmentStatus.PENDING)

    def test_reschedule_declined_into_taken_slot_changes_nothing(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00001", _future(3))
        self.doctor.decline(appointment_id)
        self.bob.schedule_appointment("DOC00001", _future(4))

        with self.assertRaises(SlotUnavailableError):
            self.alice.reschedule_appointment(appointment_id, _future(4))

        unchanged = self.database.appointments.get(appointment_id)
        self.assertEqual(unchanged.date_time, _future(3))
        self.assertEqual(unchanged.status, AppointmentStatus.DECLINED)

        moved = self.alice.reschedule_appointment(appointment_id, _future(5))
        self.assertEqual(moved.status, AppointmentStatus.PENDING)

    def test_cancel(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00001", _future(3))

        self.assertEqual(self.alice.cancel_appointment(appointment_id).status, AppointmentStatus.CANCELED)
        with self.assertRaises(TerminalStateError):
            self.alice.cancel_appointment(appointment_id)

    def test_history_and_payment(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00001", _future(3))
        self.doctor.accept(appointment_id)
        self.doctor.record_outcome(appointment_id, "Consultation", ["Paracetamol"], "Rest")

        history = self.alice.appointment_history()
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].outcome.total_amount, 15.0)

        paid = self.alice.pay_bill(appointment_id)
        self.assertTrue(paid.is_paid)

    def test_register_patient_creates_account_and_record(self) -> None:
        patient = register_patient(
            self.database, name="Cara", gender="Female", username="cara", password="secret"
        )

        self.assertEqual(patient.user_id, "p00003")
        self.assertIs(patient.role, Role.PATIENT)
        self.assertEqual(self.database.medical_records.get("p00003").diagnoses, ())
        self.assertEqual(self.database.users.authenticate("cara", "secret"), patient)


class DoctorControllerTests(ControllerTestCase):
    def test_accept_and_decline_own_appointments_only(self) -> None:
        first = self.alice.schedule_appointment("DOC00001", _future(2))
        second = self.bob.schedule_appointment("DOC00001", _future(2, hour=11))

        self.assertEqual(self.doctor.accept(first).status, AppointmentStatus.CONFIRMED)
        self.assertEqual(self.doctor.decline(second).status, AppointmentStatus.DECLINED)
        with self.assertRaises(AuthorizationError):
            self.other_doctor.accept(first)

    def test_accept_all_pending(self) -> None:
        self.alice.schedule_appointment("DOC00001", _future(2))
        self.bob.schedule_appointment("DOC00001", _future(3))
        self.bob.schedule_appointment("DOC00002", _future(3))

        changed = self.doctor.accept_all_pending()

        self.assertEqual(len(changed), 2)
        self.assertTrue(all(item.status is AppointmentStatus.CONFIRMED for item in self.doctor.schedule()))

    def test_medical_records_limited_to_own_patients(self) -> None:
        self.assertEqual(self.doctor.patient_record("p00001").diagnoses, ("Hypertension",))
        with self.assertRaises(AuthorizationError):
            self.doctor.update_record("p00002", diagnoses=["Flu"])

        self.bob.schedule_appointment("DOC00001", _future(2))
        record = self.doctor.update_record("p00002", diagnoses=["Flu"], treatment_plans=["Rest"])

        self.assertEqual(record.diagnoses, ("Flu",))
        self.assertEqual([item.patient_id for item in self.doctor.patient_records()], ["p00001", "p00002"])

    def test_record_outcome_completes_appointment(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00001", _future(2))
        self.doctor.accept(appointment_id)

        outcome = self.doctor.record_outcome(appointment_id, "Consultation", ["Ibuprofen"], "Notes")

        self.assertEqual(outcome.prescription_status, PrescriptionStatus.PENDING)
        self.assertEqual(self.database.appointments.get(appointment_id).status, AppointmentStatus.COMPLETED)
        with self.assertRaises(TerminalStateError):
            self.doctor.record_outcome(appointment_id, "Consultation", [], "")

    def test_outcome_without_medication_has_no_prescription(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00001", _future(2))

        outcome = self.doctor.record_outcome(appointment_id, "Check-up", [], "")

        self.assertEqual(outcome.prescription_status, PrescriptionStatus.NONE)

    def test_outcome_is_removed_when_appointment_update_fails(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00001", _future(2))
        table = self.database.appointments.table

        with patch.object(table, "write_rows", side_effect=PersistenceError("disk full")):
            with self.assertRaises(PersistenceError):
                self.doctor.record_outcome(appointment_id, "Consultation", ["Paracetamol"], "")

        self.assertNotIn(appointment_id, self.database.outcomes)
        self.assertEqual(self.database.appointments.get(appointment_id).status, AppointmentStatus.PENDING)


class PharmacistControllerTests(ControllerTestCase):
    def _prescribe(self, medications) -> int:
        appointment_id = self.alice.schedule_appointment("DOC00001", _future(2))
        self.doctor.record_outcome(appointment_id, "Consultation", medications, "")
        return appointment_id

    def test_dispense_decrements_stock_per_prescribed_unit(self) -> None:
        appointment_id = self._prescribe(["Paracetamol", "Paracetamol", "Ibuprofen"])
        self.assertEqual([item.outcome_id for item in self.pharmacist.pending_prescriptions()], [appointment_id])

        outcome = self.pharmacist.dispense(appointment_id)

        self.assertEqual(outcome.prescription_status, PrescriptionStatus.DISPENSED)
        self.assertEqual(self.database.medications.get("Paracetamol").current_stock, 98)
        self.assertEqual(self.database.medications.get("Ibuprofen").current_stock, 49)
        self.assertEqual(self.pharmacist.pending_prescriptions(), [])
        with self.assertRaises(InvalidTransitionError):
            self.pharmacist.dispense(appointment_id)

    def test_dispense_with_insufficient_stock_changes_nothing(self) -> None:
        appointment_id = self._prescribe(["Paracetamol", "Amoxicillin"])
        self.database.medications.update_stock_level("Amoxicillin", 0)

        with self.assertRaises(InsufficientStockError):
            self.pharmacist.dispense(appointment_id)

        self.assertEqual(self.database.medications.get("Paracetamol").current_stock, 100)
        self.assertEqual(self.pharmacist.outcome(appointment_id).prescription_status, PrescriptionStatus.PENDING)

    def test_replenish_request_approved_by_admin(self) -> None:
        self.database.medications.decrease_stock("Amoxicillin", 18)
        self.assertEqual([item.name for item in self.pharmacist.low_stock()], ["Amoxicillin"])

        request_id = self.pharmacist.submit_replenish_request("Amoxicillin", 30)
        self.assertEqual([item.request_id for item in self.admin.replenish_requests()], [request_id])

        approved = self.admin.approve_request(request_id)

        self.assertEqual(approved.status, ReplenishStatus.APPROVED)
        self.assertEqual(self.database.medications.get("Amoxicillin").current_stock, 32)
        self.assertEqual(self.admin.replenish_requests(), [])
        self.assertEqual(len(self.pharmacist.my_replenish_requests()), 1)


class AvailabilityWorkflowTests(ControllerTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.day = _future(2).date()
        self.doctor.set_monthly_availability(self.day, time(9, 0), time(11, 0), 60)
        self.nine = datetime.combine(self.day, time(9, 0))
        self.ten = datetime.combine(self.day, time(10, 0))

    def open_times(self):
        return self.alice.available_slots("DOC00001").get(self.day, ())

    def test_patient_sees_published_slots(self) -> None:
        self.assertEqual(self.open_times(), (time(9, 0), time(10, 0), time(11, 0)))
        self.assertEqual(self.alice.available_slots("DOC00002"), {})
        with self.assertRaises(NotFoundError):
            self.alice.available_slots("PHM00001")

    def test_booking_takes_slot_and_off_calendar_time_is_rejected(self) -> None:
        self.alice.schedule_appointment("DOC00001", self.nine)

        self.assertEqual(self.open_times(), (time(10, 0), time(11, 0)))
        with self.assertRaises(SlotUnavailableError):
            self.bob.schedule_appointment("DOC00001", self.nine)
        with self.assertRaises(SlotUnavailableError):
            self.bob.schedule_appointment("DOC00001", datetime.combine(self.day, time(9, 15)))
        self.assertEqual(len(self.database.appointments), 1)

    def test_doctor_without_calendar_accepts_any_future_time(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00002", _future(3, hour=16))

        self.assertEqual(self.database.appointments.get(appointment_id).doctor_id, "DOC00002")

    def test_cancel_and_decline_give_slot_back(self) -> None:
        first = self.alice.schedule_appointment("DOC00001", self.nine)
        second = self.bob.schedule_appointment("DOC00001", self.ten)

        self.alice.cancel_appointment(first)
        self.doctor.decline(second)

        self.assertEqual(self.open_times(), (time(9, 0), time(10, 0), time(11, 0)))

    def test_reschedule_moves_slot(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00001", self.nine)

        self.alice.reschedule_appointment(appointment_id, self.ten)

        self.assertEqual(self.open_times(), (time(9, 0), time(11, 0)))

    def test_failed_reschedule_keeps_original_slot(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00001", self.nine)

        with self.assertRaises(SlotUnavailableError):
            self.alice.reschedule_appointment(appointment_id, datetime.combine(self.day, time(9, 45)))

        self.assertEqual(self.open_times(), (time(10, 0), time(11, 0)))
        self.assertEqual(self.database.appointments.get(appointment_id).date_time, self.nine)

    def test_failed_booking_write_returns_slot(self) -> None:
        with patch.object(self.database.appointments.table, "write_rows", side_effect=PersistenceError("disk full")):
            with self.assertRaises(PersistenceError):
                self.alice.schedule_appointment("DOC00001", self.nine)

        self.assertIn(time(9, 0), self.open_times())

    def test_republishing_keeps_booked_times_closed(self) -> None:
        self.alice.schedule_appointment("DOC00001", self.ten)

        published = self.doctor.set_monthly_availability(self.day, time(9, 0), time(11, 0), 60)

        self.assertEqual(published[self.day], (time(9, 0), time(11, 0)))
        self.assertEqual(self.doctor.availability()[self.day], (time(9, 0), time(11, 0)))


class AdminControllerTests(ControllerTestCase):
    def test_add_staff_generates_id(self) -> None:
        pharmacist = self.admin.add_staff(
            "pharmacist", name="Sam", gender="Male", username="sam", password="pw", license_number="LIC-9"
        )

        self.assertEqual(pharmacist.user_id, "PHM00002")
        self.assertEqual(pharmacist.license_number, "LIC-9")
        with self.assertRaises(ValidationError):
            self.admin.add_staff(Role.PATIENT, name="X", gender="M", username="x", password="pw")

    def test_changing_doctor_id_moves_appointments(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00002", _future(2))

        self.admin.update_staff("DOC00002", user_id="DOC10002")

        self.assertEqual(self.database.appointments.get(appointment_id).doctor_id, "DOC10002")

    def test_changing_doctor_id_moves_availability(self) -> None:
        day = _future(2).date()
        self.other_doctor.set_monthly_availability(day, time(9, 0), time(9, 0), 30)

        self.admin.update_staff("DOC00002", user_id="DOC10002")

        self.assertFalse(self.database.availability.has_schedule("DOC00002"))
        self.assertTrue(self.database.availability.is_available("DOC10002", datetime.combine(day, time(9, 0))))

    def test_failed_carry_over_restores_old_id(self) -> None:
        appointment_id = self.alice.schedule_appointment("DOC00002", _future(2))

        with patch.object(
            self.database.appointments.table, "write_rows", side_effect=PersistenceError("disk full")
        ):
            with self.assertRaises(PersistenceError):
                self.admin.update_staff("DOC00002", user_id="DOC10002")

        self.assertIsNotNone(self.database.users.find("DOC00002"))
        self.assertIsNone(self.database.users.find("DOC10002"))
        self.assertEqual(self.database.appointments.get(appointment_id).doctor_id, "DOC00002")

    def test_update_staff_rejects_unknown_fields(self) -> None:
        with self.assertRaises(ValidationError):
            self.admin.update_staff("DOC00002", favourite_colour="blue")
        with self.assertRaises(ValidationError):
            self.admin.update_staff("DOC00002", role=Role.ADMIN)

    def test_remove_staff(self) -> None:
        self.admin.remove_staff("DOC00002")

        self.assertNotIn("DOC00002", [user.user_id for user in self.admin.staff()])
        with self.assertRaises(ValidationError):
            self.admin.remove_staff("ADM00001")
        with self.assertRaises(ValidationError):
            self.admin.remove_staff("p00001")

    def test_inventory_management(self) -> None:
        self.admin.add_medication("Cetirizine", 40, 5, 1.2)
        self.admin.increase_stock("Cetirizine", 10)
        self.admin.decrease_stock("Cetirizine", 20)
        self.admin.set_low_stock_alert("Cetirizine", 30)
        self.admin.set_price("Cetirizine", 1.5)

        medication = self.database.medications.get("Cetirizine")
        self.assertEqual(medication.current_stock, 30)
        self.assertTrue(medication.is_low_stock)
        self.assertEqual(medication.price, 1.5)

        self.admin.delete_medication("Cetirizine")
        self.assertNotIn("Cetirizine", [item.name for item in self.admin.medications()])

    def test_deny_request(self) -> None:
        request_id = self.pharmacist.submit_replenish_request("Ibuprofen", 10)

        self.admin.deny_request(request_id)

        self.assertEqual(self.database.medications.get("Ibuprofen").current_stock, 50)
        self.assertEqual(len(self.admin.replenish_requests(active_only=False)), 1)

    def test_appointments_include_outcomes(self) -> None:
        done = self.alice.schedule_appointment("DOC00001", _future(2))
        open_id = self.bob.schedule_appointment("DOC00002", _future(3))
        self.doctor.record_outcome(done, "Consultation", [], "")

        rows = {row.appointment.appointment_id: row for row in self.admin.appointments()}

        self.assertIsNotNone(rows[done].outcome)
        self.assertIsNone(rows[open_id].outcome)


if __name__ == "__main__":
    unittest.main()
