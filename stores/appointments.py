"""Appointment store with status lifecycle and double-booking checks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .base import TableStore, parse_enum, require_identifier
from .csv_table import CsvTable
from .errors import NotFoundError, SlotUnavailableError, TerminalStateError, ValidationError

LOGGER = logging.getLogger(__name__)

APPOINTMENT_HEADERS = (
    "AppointmentId",
    "DoctorId",
    "PatientId",
    "DateTime",
    "Status",
)
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class AppointmentStatus(Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DECLINED = "DECLINED"
    CANCELED = "CANCELED"
    COMPLETED = "COMPLETED"

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELED)

    @property
    def is_active(self) -> bool:
        return self in (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


@dataclass(frozen=True)
class Appointment:
    appointment_id: int
    doctor_id: str
    patient_id: str
    date_time: datetime
    status: AppointmentStatus


def parse_appointment_datetime(value: str) -> datetime:
    """Parse ``yyyy-MM-dd HH:mm:ss`` or an ISO-8601 date-time string."""

    cleaned = value.strip()
    try:
        return datetime.strptime(cleaned, DATETIME_FORMAT)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(cleaned)
    except ValueError as exc:
        raise ValidationError(f"Invalid appointment date-time {value!r}") from exc


def _require_datetime(value: object) -> datetime:
    if not isinstance(value, datetime):
        raise ValidationError("date_time must be a datetime instance")
    return value.replace(microsecond=0)


class AppointmentStore(TableStore[int, Appointment]):
    """Appointments keyed by a monotonic integer id.

    COMPLETED and CANCELED are terminal. A doctor can hold at most one
    PENDING or CONFIRMED appointment per date-time.
    """

    entity_name = "appointment"

    def __init__(self, table: CsvTable) -> None:
        super().__init__(table)
        self._next_id = 1

    @classmethod
    def at(cls, path: Path | str) -> "AppointmentStore":
        return cls(CsvTable(path, APPOINTMENT_HEADERS))

    def create(
        self,
        doctor_id: str,
        patient_id: str,
        date_time: datetime,
        status: AppointmentStatus | str = AppointmentStatus.PENDING,
    ) -> int:
        doctor_id = require_identifier(doctor_id, "doctor_id")
        patient_id = require_identifier(patient_id, "patient_id")
        date_time = _require_datetime(date_time)
        status = parse_enum(AppointmentStatus, status, "appointment status")
        if status.is_terminal:
            raise ValidationError(f"New appointments cannot start as {status.value}")
        if status.is_active:
            self._ensure_slot_free(doctor_id, date_time)

        appointment = Appointment(
            appointment_id=self._next_id,
            doctor_id=doctor_id,
            patient_id=patient_id,
            date_time=date_time,
            status=status,
        )
        self._replace(appointment)
        self._next_id += 1
        LOGGER.info(
            "Appointment %d booked with %s for %s at %s",
            appointment.appointment_id,
            doctor_id,
            patient_id,
            date_time.strftime(DATETIME_FORMAT),
        )
        return appointment.appointment_id

    def get(self, appointment_id: int) -> Appointment:
        appointment = self._records.get(appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    def set_status(self, appointment_id: int, new_status: AppointmentStatus | str) -> Appointment:
        status = parse_enum(AppointmentStatus, new_status, "appointment status")
        appointment = self._require_mutable(appointment_id)
        if status.is_active and not appointment.status.is_active:
            self._ensure_slot_free(appointment.doctor_id, appointment.date_time, appointment_id)
        updated = self._replace(replace(appointment, status=status))
        LOGGER.info(
            "Appointment %d moved from %s to %s",
            appointment_id,
            appointment.status.value,
            status.value,
        )
        return updated

    def reschedule(
        self,
        appointment_id: int,
        new_date_time: datetime,
        new_status: Optional[AppointmentStatus | str] = None,
    ) -> Appointment:
        """Move an appointment, optionally changing its status in the same write.

        The slot check applies whenever the resulting status is active.
        """

        new_date_time = _require_datetime(new_date_time)
        appointment = self._require_mutable(appointment_id)
        status = appointment.status
        if new_status is not None:
            status = parse_enum(AppointmentStatus, new_status, "appointment status")
            if status.is_terminal:
                raise ValidationError(f"Rescheduling cannot move an appointment to {status.value}")
        if status.is_active:
            self._ensure_slot_free(appointment.doctor_id, new_date_time, appointment_id)
        updated = self._replace(replace(appointment, date_time=new_date_time, status=status))
        LOGGER.info(
            "Appointment %d rescheduled to %s [%s]",
            appointment_id,
            new_date_time.strftime(DATETIME_FORMAT),
            status.value,
        )
        return updated

    def is_slot_available(
        self, doctor_id: str, date_time: datetime, ignore_id: Optional[int] = None
    ) -> bool:
        for appointment in self._records.values():
            if appointment.appointment_id == ignore_id:
                continue
            if (
                appointment.doctor_id == doctor_id
                and appointment.date_time == date_time
                and appointment.status.is_active
            ):
                return False
        return True

    def find_by_doctor(self, doctor_id: str) -> List[Appointment]:
        return self._select(lambda appointment: appointment.doctor_id == doctor_id)

    def find_by_patient(self, patient_id: str) -> List[Appointment]:
        return self._select(lambda appointment: appointment.patient_id == patient_id)

    def upcoming_for_doctor(
        self, doctor_id: str, now: Optional[datetime] = None
    ) -> List[Appointment]:
        now = now or datetime.now()
        return self._select(
            lambda appointment: appointment.doctor_id == doctor_id
            and appointment.status.is_active
            and appointment.date_time > now
        )

    def completed_for_patient(self, patient_id: str) -> List[Appointment]:
        return self._select(
            lambda appointment: appointment.patient_id == patient_id
            and appointment.status is AppointmentStatus.COMPLETED
        )

    def completed_for_doctor(self, doctor_id: str) -> List[Appointment]:
        return self._select(
            lambda appointment: appointment.doctor_id == doctor_id
            and appointment.status is AppointmentStatus.COMPLETED
        )

    def reassign_patient(self, old_patient_id: str, new_patient_id: str) -> int:
        return self._reassign(old_patient_id, new_patient_id, "patient_id")

    def reassign_doctor(self, old_doctor_id: str, new_doctor_id: str) -> int:
        return self._reassign(old_doctor_id, new_doctor_id, "doctor_id")

    def _reassign(self, old_id: str, new_id: str, field_name: str) -> int:
        new_id = require_identifier(new_id, field_name)
        if new_id == old_id:
            raise ValidationError(f"New {field_name} must differ from the old one")
        records: Dict[int, Appointment] = dict(self._records)
        changed = 0
        for appointment_id, appointment in records.items():
            if getattr(appointment, field_name) == old_id:
                records[appointment_id] = replace(appointment, **{field_name: new_id})
                changed += 1
        if not changed:
            raise NotFoundError(f"No appointments found with {field_name} {old_id}")
        self._commit(records)
        return changed

    def _require_mutable(self, appointment_id: int) -> Appointment:
        appointment = self.get(appointment_id)
        if appointment.status.is_terminal:
            raise TerminalStateError(
                f"Appointment {appointment_id} is {appointment.status.value} and cannot change"
            )
        return appointment

    def _ensure_slot_free(
        self, doctor_id: str, date_time: datetime, ignore_id: Optional[int] = None
    ) -> None:
        if not self.is_slot_available(doctor_id, date_time, ignore_id):
            raise SlotUnavailableError(
                f"Doctor {doctor_id} already has an appointment at "
                f"{date_time.strftime(DATETIME_FORMAT)}"
            )

    def _select(self, predicate: Callable[[Appointment], bool]) -> List[Appointment]:
        matches = [appointment for appointment in self._records.values() if predicate(appointment)]
        return sorted(matches, key=lambda appointment: (appointment.date_time, appointment.appointment_id))

    def _after_load(self) -> None:
        if self._records:
            self._next_id = max(self._next_id, max(self._records) + 1)

    def _key(self, record: Appointment) -> int:
        return record.appointment_id

    def _to_row(self, record: Appointment) -> Sequence[str]:
        return [
            str(record.appointment_id),
            record.doctor_id,
            record.patient_id,
            record.date_time.strftime(DATETIME_FORMAT),
            record.status.value,
        ]

    def _from_row(self, row: Sequence[str]) -> Appointment:
        return Appointment(
            appointment_id=int(row[0]),
            doctor_id=require_identifier(row[1], "doctor_id"),
            patient_id=require_identifier(row[2], "patient_id"),
            date_time=parse_appointment_datetime(row[3]),
            status=parse_enum(AppointmentStatus, row[4], "appointment status"),
        )
