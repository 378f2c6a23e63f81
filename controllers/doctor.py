"""Doctor workflows: schedule review, medical records and consultation outcomes."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from stores import (
    Appointment,
    AppointmentOutcome,
    AppointmentStatus,
    AuthorizationError,
    DeletionReport,
    HospitalError,
    MedicalRecord,
    PrescriptionStatus,
    RecordList,
    Role,
    TerminalStateError,
)

from .base import RoleController

LOGGER = logging.getLogger(__name__)


class DoctorController(RoleController):
    role = Role.DOCTOR

    def patient_ids(self) -> List[str]:
        """Patients assigned to this doctor or booked with them at least once."""

        ids = set(self.user.patient_ids)
        ids.update(
            appointment.patient_id
            for appointment in self.database.appointments.find_by_doctor(self.user_id)
        )
        return sorted(ids)

    def patient_records(self) -> List[MedicalRecord]:
        records = []
        for patient_id in self.patient_ids():
            record = self.database.medical_records.find(patient_id)
            if record is not None:
                records.append(record)
        return records

    def patient_record(self, patient_id: str) -> MedicalRecord:
        self._require_patient(patient_id)
        return self.database.medical_records.get(patient_id)

    def update_record(
        self,
        patient_id: str,
        diagnoses: Optional[Iterable[str]] = None,
        prescriptions: Optional[Iterable[str]] = None,
        treatment_plans: Optional[Iterable[str]] = None,
    ) -> MedicalRecord:
        self._require_patient(patient_id)
        return self.database.medical_records.append(
            patient_id,
            diagnoses=diagnoses,
            prescriptions=prescriptions,
            treatment_plans=treatment_plans,
        )

    def delete_record_entry(self, patient_id: str, kind: RecordList | str, index: int) -> MedicalRecord:
        self._require_patient(patient_id)
        return self.database.medical_records.delete_by_index(patient_id, kind, index)

    def delete_record_entries(self, patient_id: str, kind: RecordList | str, values: str) -> DeletionReport:
        self._require_patient(patient_id)
        return self.database.medical_records.delete_by_value(patient_id, kind, values)

    def schedule(self) -> List[Appointment]:
        return self.database.appointments.find_by_doctor(self.user_id)

    def upcoming_appointments(self, now: Optional[datetime] = None) -> List[Appointment]:
        return self.database.appointments.upcoming_for_doctor(self.user_id, now)

    def past_appointments(self) -> List[Appointment]:
        return self.database.appointments.completed_for_doctor(self.user_id)

    def availability(self, now: Optional[datetime] = None) -> Dict[date, Tuple[time, ...]]:
        return self.database.availability.slots_for(self.user_id, after=now or datetime.now())

    def set_monthly_availability(
        self, start_date: date, start_time: time, end_time: time, interval_minutes: int
    ) -> Dict[date, Tuple[time, ...]]:
        """Publish slots for the rest of ``start_date``'s month.

        Times already taken by upcoming appointments stay closed.
        """

        booked = [appointment.date_time for appointment in self.upcoming_appointments()]
        return self.database.availability.set_monthly(
            self.user_id, start_date, start_time, end_time, interval_minutes, booked
        )

    def accept(self, appointment_id: int) -> Appointment:
        return self._change_status(self._own_appointment(appointment_id), AppointmentStatus.CONFIRMED)

    def decline(self, appointment_id: int) -> Appointment:
        return self._change_status(self._own_appointment(appointment_id), AppointmentStatus.DECLINED)

    def accept_all_pending(self, now: Optional[datetime] = None) -> List[Appointment]:
        return self._transition_pending(AppointmentStatus.CONFIRMED, now)

    def decline_all_pending(self, now: Optional[datetime] = None) -> List[Appointment]:
        return self._transition_pending(AppointmentStatus.DECLINED, now)

    def record_outcome(
        self,
        appointment_id: int,
        service_type: str,
        medication_ids: Sequence[str],
        notes: str,
        prescription_status: Optional[PrescriptionStatus | str] = None,
    ) -> AppointmentOutcome:
        """Record the consultation outcome and complete the appointment.

        The outcome is removed again if the appointment cannot be completed,
        so an outcome never exists for an appointment that is still open.
        """

        appointment = self._own_appointment(appointment_id)
        if appointment.status.is_terminal:
            raise TerminalStateError(
                f"Appointment {appointment_id} is {appointment.status.value}; "
                "no outcome can be recorded"
            )
        if prescription_status is None:
            prescription_status = (
                PrescriptionStatus.PENDING if medication_ids else PrescriptionStatus.NONE
            )

        outcome = self.database.outcomes.create(
            appointment_id, service_type, medication_ids, notes, prescription_status
        )
        try:
            self.database.appointments.set_status(appointment_id, AppointmentStatus.COMPLETED)
        except HospitalError:
            LOGGER.error("Completing appointment %d failed; removing its outcome", appointment_id)
            self.database.outcomes.remove(appointment_id)
            raise
        return outcome

    def _transition_pending(
        self, status: AppointmentStatus, now: Optional[datetime]
    ) -> List[Appointment]:
        changed = []
        for appointment in self.upcoming_appointments(now):
            if appointment.status is AppointmentStatus.PENDING:
                changed.append(self._change_status(appointment, status))
        LOGGER.info("%s moved %d pending appointments to %s", self.user_id, len(changed), status.value)
        return changed

    def _own_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.database.appointments.get(appointment_id)
        if appointment.doctor_id != self.user_id:
            raise AuthorizationError(
                f"Appointment {appointment_id} is not assigned to doctor {self.user_id}"
            )
        return appointment

    def _require_patient(self, patient_id: str) -> None:
        if patient_id not in self.patient_ids():
            raise AuthorizationError(f"Patient {patient_id} is not under the care of {self.user_id}")
