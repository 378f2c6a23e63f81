import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path

from stores import (
    AppointmentStatus,
    AppointmentStore,
    NotFoundError,
    SlotUnavailableError,
    TerminalStateError,
    ValidationError,
)

from tests.helpers import read_csv


class AppointmentStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "Appointment_List.csv"
        self.store = AppointmentStore.at(self.path)
        self.slot = datetime(2030, 5, 1, 9, 30)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_create_appointment_success(self) -> None:
        appointment_id = self.store.create("DOC00001", "p00001", self.slot)

        appointment = self.store.get(appointment_id)
        self.assertEqual(appointment_id, 1)
        self.assertEqual(appointment.status, AppointmentStatus.PENDING)
        self.assertEqual(
            read_csv(self.path)[1],
            ["1", "DOC00001", "p00001", "2030-05-01 09:30:00", "PENDING"],
        )

    def test_create_rejects_double_booking(self) -> None:
        self.store.create("DOC00001", "p00001", self.slot)

        with self.assertRaises(SlotUnavailableError):
            self.store.create("DOC00001", "p00002", self.slot)

        self.assertEqual(len(self.store), 1)
        self.store.create("DOC00002", "p00002", self.slot)

    def test_canceled_slot_can_be_booked_again(self) -> None:
        first = self.store.create("DOC00001", "p00001", self.slot)
        self.store.set_status(first, AppointmentStatus.CANCELED)

        second = self.store.create("DOC00001", "p00002", self.slot)

        self.assertEqual(second, 2)

    def test_terminal_appointments_cannot_change(self) -> None:
        appointment_id = self.store.create("DOC00001", "p00001", self.slot)
        self.store.set_status(appointment_id, AppointmentStatus.COMPLETED)

        with self.assertRaises(TerminalStateError):
            self.store.set_status(appointment_id, AppointmentStatus.PENDING)
        with self.assertRaises(TerminalStateError):
            self.store.reschedule(appointment_id, self.slot + timedelta(days=1))

    def test_reactivating_declined_appointment_checks_slot(self) -> None:
        declined = self.store.create("DOC00001", "p00001", self.slot)
        self.store.set_status(declined, "declined")
        self.store.create("DOC00001", "p00002", self.slot)

        with self.assertRaises(SlotUnavailableError):
            self.store.set_status(declined, AppointmentStatus.CONFIRMED)

        self.assertEqual(self.store.get(declined).status, AppointmentStatus.DECLINED)

    def test_reschedule_checks_new_slot(self) -> None:
        first = self.store.create("DOC00001", "p00001", self.slot)
        later = self.slot + timedelta(hours=1)
        self.store.create("DOC00001", "p00002", later)

        with self.assertRaises(SlotUnavailableError):
            self.store.reschedule(first, later)

        moved = self.store.reschedule(first, self.slot + timedelta(hours=2))
        self.assertEqual(moved.date_time, self.slot + timedelta(hours=2))

    def test_reschedule_with_status_reset_is_all_or_nothing(self) -> None:
        declined = self.store.create("DOC00001", "p00001", self.slot)
        self.store.set_status(declined, AppointmentStatus.DECLINED)
        taken = self.slot + timedelta(days=1)
        self.store.create("DOC00001", "p00002", taken)

        with self.assertRaises(SlotUnavailableError):
            self.store.reschedule(declined, taken, AppointmentStatus.PENDING)

        unchanged = self.store.get(declined)
        self.assertEqual(unchanged.date_time, self.slot)
        self.assertEqual(unchanged.status, AppointmentStatus.DECLINED)
        self.assertEqual(read_csv(self.path)[1][3:], ["2030-05-01 09:30:00", "DECLINED"])

        moved = self.store.reschedule(declined, self.slot + timedelta(days=2), "pending")
        self.assertEqual(moved.status, AppointmentStatus.PENDING)
        with self.assertRaises(ValidationError):
            self.store.reschedule(declined, self.slot, AppointmentStatus.CANCELED)

    def test_create_rejects_terminal_initial_status(self) -> None:
        with self.assertRaises(ValidationError):
            self.store.create("DOC00001", "p00001", self.slot, AppointmentStatus.COMPLETED)

    def test_unknown_appointment_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.store.set_status(99, AppointmentStatus.CONFIRMED)

    def test_upcoming_for_doctor_sorted_and_active_only(self) -> None:
        now = datetime(2030, 1, 1)
        late = self.store.create("DOC00001", "p00001", self.slot + timedelta(days=2))
        early = self.store.create("DOC00001", "p00002", self.slot)
        past = self.store.create("DOC00001", "p00002", datetime(2029, 12, 1, 10, 0))
        declined = self.store.create("DOC00001", "p00001", self.slot + timedelta(days=5))
        self.store.set_status(declined, AppointmentStatus.DECLINED)
        self.store.create("DOC00002", "p00001", self.slot)

        upcoming = self.store.upcoming_for_doctor("DOC00001", now)

        self.assertEqual([item.appointment_id for item in upcoming], [early, late])
        self.assertNotIn(past, [item.appointment_id for item in upcoming])

    def test_find_by_patient_sorted(self) -> None:
        late = self.store.create("DOC00001", "p00001", self.slot + timedelta(hours=2))
        early = self.store.create("DOC00002", "p00001", self.slot)

        schedule = self.store.find_by_patient("p00001")

        self.assertEqual([item.appointment_id for item in schedule], [early, late])

    def test_completed_queries(self) -> None:
        done = self.store.create("DOC00001", "p00001", self.slot)
        self.store.create("DOC00001", "p00001", self.slot + timedelta(days=1))
        self.store.set_status(done, AppointmentStatus.COMPLETED)

        self.assertEqual([a.appointment_id for a in self.store.completed_for_patient("p00001")], [done])
        self.assertEqual([a.appointment_id for a in self.store.completed_for_doctor("DOC00001")], [done])

    def test_reload_keeps_ids_and_counter(self) -> None:
        self.store.create("DOC00001", "p00001", self.slot)
        self.store.create("DOC00001", "p00001", self.slot + timedelta(hours=1))

        reloaded = AppointmentStore.at(self.path)
        self.assertEqual(reloaded.load(), 2)

        self.assertEqual(reloaded.create("DOC00001", "p00002", self.slot + timedelta(hours=3)), 3)
        self.assertEqual(reloaded.get(1).date_time, self.slot)

    def test_reassign_doctor(self) -> None:
        appointment_id = self.store.create("DOC00001", "p00001", self.slot)

        self.assertEqual(self.store.reassign_doctor("DOC00001", "DOC10001"), 1)
        self.assertEqual(self.store.get(appointment_id).doctor_id, "DOC10001")
        with self.assertRaises(NotFoundError):
            self.store.reassign_doctor("DOC00001", "DOC10002")


if __name__ == "__main__":
    unittest.main()
