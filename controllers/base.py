"""Common plumbing for role controllers."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from stores import (
    Appointment,
    AppointmentStatus,
    AuthorizationError,
    Database,
    HospitalError,
    Role,
    User,
)

# Statuses that hand a booked slot back to the doctor's calendar.
RELEASING_STATUSES = (AppointmentStatus.DECLINED, AppointmentStatus.CANCELED)


class RoleController:
    """Binds an authenticated user to the stores their role may use."""

    role: Optional[Role] = None

    def __init__(self, user: User, database: Database) -> None:
        if self.role is not None and user.role is not self.role:
            raise AuthorizationError(
                f"{type(self).__name__} requires role {self.role.value}, "
                f"got {user.role.value} for {user.user_id}"
            )
        self.user = user
        self.database = database

    @property
    def user_id(self) -> str:
        return self.user.user_id

    def _book_slot(self, doctor_id: str, date_time: datetime) -> bool:
        """Take a published slot. Doctors without a published calendar accept any time."""

        if not self.database.availability.has_schedule(doctor_id):
            return False
        self.database.availability.book(doctor_id, date_time)
        return True

    def _change_status(self, appointment: Appointment, status: AppointmentStatus) -> Appointment:
        """Set an appointment's status and keep the doctor's open slots in step.

        Declining or canceling an active appointment frees its slot, and
        reactivating one takes the slot again. The slot change is undone if
        the status cannot be written.
        """

        doctor_id, when = appointment.doctor_id, appointment.date_time
        released = booked = False
        if not appointment.status.is_terminal:
            if appointment.status.is_active and status in RELEASING_STATUSES:
                released = self.database.availability.release(doctor_id, when)
            elif status.is_active and not appointment.status.is_active:
                booked = self._book_slot(doctor_id, when)
        try:
            return self.database.appointments.set_status(appointment.appointment_id, status)
        except HospitalError:
            if released:
                self.database.availability.book(doctor_id, when)
            if booked:
                self.database.availability.release(doctor_id, when)
            raise
