"""Patient self-service operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Dict, List, Optional, Tuple

from stores import (
    Appointment,
    AppointmentOutcome,
    AppointmentStatus,
    AuthorizationError,
    Database,
    HospitalError,
    MedicalRecord,
    NotFoundError,
    Role,
    SlotUnavailableError,
    TerminalStateError,
    User,
    ValidationError,
)

from .base import RoleController

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppointmentWithOutcome:
    appointment: Appointment
    outcome: Optional[AppointmentOutcome] = None


def register_patient(
    database: Database,
    *,
    name: str,
    gender: str,
    username: str,
    password: str,
    date_of_birth: Optional[date] = None,
    contact_number: str = "",
    email: str = "",
    blood_type: str = "",
) -> User:
    """Create a patient account with a fresh id and an empty medical record."""

    patient = User(
        user_id=database.users.generate_id(Role.PATIENT),
        role=Role.PATIENT,
        name=name,
        gender=gender,
        username=username,
        password=password,
        date_of_birth=date_of_birth,
        contact_number=contact_number,
        email=email,
        blood_type=blood_type,
    )
    database.users.add(patient)
    if database.medical_records.find(patient.user_id) is None:
        database.medical_records.create(patient.user_id)
    LOGGER.info("Registered patient %s", patient.user_id)
    return patient


class PatientController(RoleController):
    role = Role.PATIENT

    def medical_record(self) -> MedicalRecord:
        return self.database.medical_records.get(self.user_id)

    def appointments(self) -> List[Appointment]:
        return self.database.appointments.find_by_patient(self.user_id)

    def available_slots(
        self, doctor_id: str, now: Optional[datetime] = None
    ) -> Dict[date, Tuple[time, ...]]:
        """Open slots a doctor has published, from now on."""

        self._require_doctor(doctor_id)
        return self.database.availability.slots_for(doctor_id, after=now or datetime.now())

    def schedule_appointment(self, doctor_id: str, date_time: datetime) -> int:
        self._require_doctor(doctor_id)
        if date_time <= datetime.now():
            raise ValidationError("Appointments must be scheduled in the future")
        if not self.database.appointments.is_slot_available(doctor_id, date_time):
            raise SlotUnavailableError(f"Doctor {doctor_id} is already booked at {date_time}")
        booked = self._book_slot(doctor_id, date_time)
        try:
            return self.database.appointments.create(doctor_id, self.user_id, date_time)
        except HospitalError:
            if booked:
                self.database.availability.release(doctor_id, date_time)
            raise

    def reschedule_appointment(self, appointment_id: int, date_time: datetime) -> Appointment:
        """Move an appointment to a new time and send it back to the doctor as PENDING.

        The new time is checked against the doctor's other appointments and
        open slots before anything is written; a failure leaves the
        appointment and the calendar as they were.
        """

        appointment = self._own_appointment(appointment_id)
        if appointment.status.is_terminal:
            raise TerminalStateError(
                f"Appointment {appointment_id} is {appointment.status.value} and cannot change"
            )
        if date_time <= datetime.now():
            raise ValidationError("Appointments must be rescheduled into the future")
        doctor_id = appointment.doctor_id
        if not self.database.appointments.is_slot_available(doctor_id, date_time, appointment_id):
            raise SlotUnavailableError(f"Doctor {doctor_id} is already booked at {date_time}")

        availability = self.database.availability
        released = appointment.status.is_active and availability.release(
            doctor_id, appointment.date_time
        )
        booked = False
        try:
            booked = self._book_slot(doctor_id, date_time)
            return self.database.appointments.reschedule(
                appointment_id, date_time, AppointmentStatus.PENDING
            )
        except HospitalError:
            if booked:
                availability.release(doctor_id, date_time)
            if released:
                availability.book(doctor_id, appointment.date_time)
            raise

    def cancel_appointment(self, appointment_id: int) -> Appointment:
        appointment = self._own_appointment(appointment_id)
        return self._change_status(appointment, AppointmentStatus.CANCELED)

    def appointment_history(self) -> List[AppointmentWithOutcome]:
        history = []
        for appointment in self.database.appointments.completed_for_patient(self.user_id):
            outcome = None
            if appointment.appointment_id in self.database.outcomes:
                outcome = self.database.outcomes.get(appointment.appointment_id)
            history.append(AppointmentWithOutcome(appointment, outcome))
        return history

    def pay_bill(self, appointment_id: int) -> AppointmentOutcome:
        self._own_appointment(appointment_id)
        return self.database.outcomes.mark_paid(appointment_id)

    def _own_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.database.appointments.get(appointment_id)
        if appointment.patient_id != self.user_id:
            raise AuthorizationError(
                f"Appointment {appointment_id} does not belong to patient {self.user_id}"
            )
        return appointment

    def _require_doctor(self, doctor_id: str) -> User:
        doctor = self.database.users.find(doctor_id)
        if doctor is None or doctor.role is not Role.DOCTOR:
            raise NotFoundError(f"Doctor {doctor_id} not found")
        return doctor
