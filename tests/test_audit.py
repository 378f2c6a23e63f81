import tempfile
import unittest
from datetime import date, time
from pathlib import Path
from unittest.mock import patch

from console.audit import AuditLogger, execute_with_audit, sanitize_arguments
from stores import NotFoundError, PersistenceError


class AuditTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.audit = AuditLogger(Path(self._tmp.name) / "logs" / "audit.json")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_sanitize_arguments(self) -> None:
        cleaned = sanitize_arguments(
            {
                "new_password": "secret",
                "start_date": date(2030, 1, 2),
                "start": time(9, 30),
                "diagnosis": ("Flu", "Asthma"),
                "email": None,
            }
        )

        self.assertEqual(
            cleaned,
            {
                "diagnosis": ["Flu", "Asthma"],
                "new_password": "***",
                "start": "09:30:00",
                "start_date": "2030-01-02",
            },
        )

    def test_success_and_failure_are_recorded_with_user(self) -> None:
        self.assertEqual(execute_with_audit("doctor.accept", lambda: "ok", self.audit, user="DOC00001"), "ok")

        def fail():
            raise NotFoundError("Appointment 9 not found")

        with self.assertRaises(NotFoundError):
            execute_with_audit("doctor.accept", fail, self.audit, user="DOC00002", arguments={"appointment_id": 9})

        first, second = self.audit.entries()
        self.assertEqual(first["status"], "success")
        self.assertEqual(first["user"], "DOC00001")
        self.assertEqual(first["arguments"], {})
        self.assertNotIn("error_type", first)
        self.assertGreaterEqual(first["duration_ms"], 0)
        self.assertTrue(first["completed_at"].endswith("Z"))
        self.assertEqual(second["status"], "failed")
        self.assertEqual(second["error_type"], "NotFoundError")
        self.assertEqual(second["arguments"], {"appointment_id": 9})
        self.assertEqual(second["message"], "Appointment 9 not found")

    def test_entries_filter_by_user_and_task(self) -> None:
        execute_with_audit("patient.book", lambda: None, self.audit, user="p00001")
        execute_with_audit("patient.cancel", lambda: None, self.audit, user="p00001")
        execute_with_audit("patient.book", lambda: None, self.audit, user="p00002")

        self.assertEqual(len(self.audit.entries(user="p00001")), 2)
        self.assertEqual([item["user"] for item in self.audit.entries(task="patient.book")], ["p00001", "p00002"])

    def test_corrupt_log_is_reported(self) -> None:
        self.audit.path.parent.mkdir(parents=True)
        self.audit.path.write_text("{broken", encoding="utf-8")

        with self.assertRaises(ValueError):
            self.audit.entries()

    def test_unwritable_log_raises_persistence_error(self) -> None:
        with patch.object(Path, "write_text", side_effect=OSError("read-only")):
            with self.assertRaises(PersistenceError):
                execute_with_audit("admin.price", lambda: None, self.audit, user="ADM00001")


if __name__ == "__main__":
    unittest.main()
