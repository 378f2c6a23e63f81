"""Construction and start-up loading of every store from one data directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .appointments import AppointmentStore
from .availability import AvailabilityStore
from .medical_records import MedicalRecordStore
from .medications import MedicationStore
from .outcomes import AppointmentOutcomeStore
from .replenish import ReplenishRequestStore
from .users import UserStore

LOGGER = logging.getLogger(__name__)

STAFF_FILE = "Staff_List.csv"
PATIENT_FILE = "Patient_List.csv"
MEDICATION_FILE = "Medicine_List.csv"
REPLENISH_FILE = "Replenishment_Request.csv"
APPOINTMENT_FILE = "Appointment_List.csv"
OUTCOME_FILE = "AppointmentOutcome_List.csv"
MEDICAL_RECORD_FILE = "Medical_Records.csv"
AVAILABILITY_FILE = "Availability.csv"


@dataclass
class Database:
    """All stores for one session, wired together and owned by this object."""

    data_dir: Path
    users: UserStore
    medications: MedicationStore
    replenish_requests: ReplenishRequestStore
    appointments: AppointmentStore
    outcomes: AppointmentOutcomeStore
    medical_records: MedicalRecordStore
    availability: AvailabilityStore

    @classmethod
    def open(cls, data_dir: Path | str, load: bool = True) -> "Database":
        """Create the stores for ``data_dir`` and, by default, load them."""

        data_dir = Path(data_dir)
        medications = MedicationStore.at(data_dir / MEDICATION_FILE)
        database = cls(
            data_dir=data_dir,
            users=UserStore.at(data_dir / STAFF_FILE, data_dir / PATIENT_FILE),
            medications=medications,
            replenish_requests=ReplenishRequestStore.at(data_dir / REPLENISH_FILE, medications),
            appointments=AppointmentStore.at(data_dir / APPOINTMENT_FILE),
            outcomes=AppointmentOutcomeStore.at(data_dir / OUTCOME_FILE, medications),
            medical_records=MedicalRecordStore.at(data_dir / MEDICAL_RECORD_FILE),
            availability=AvailabilityStore.at(data_dir / AVAILABILITY_FILE),
        )
        if load:
            database.load()
        return database

    def load(self) -> None:
        """Load every table in dependency order.

        Medications must be loaded before appointment outcomes and replenish
        requests, which price and validate against the inventory.
        """

        LOGGER.info("Loading hospital data from %s", self.data_dir)
        self.users.load()
        self.medications.load()
        self.appointments.load()
        self.availability.load()
        self.outcomes.load()
        self.medical_records.load()
        self.replenish_requests.load()
