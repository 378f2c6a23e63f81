"""CSV-backed in-memory stores for the hospital management system."""

from .appointments import Appointment, AppointmentStatus, AppointmentStore
from .availability import AvailabilityStore, DoctorAvailability
from .config import Settings
from .csv_table import CsvTable
from .database import Database
from .errors import (
    AuthorizationError,
    DuplicateKeyError,
    HospitalError,
    IndexOutOfRangeError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    SlotUnavailableError,
    TerminalStateError,
    ValidationError,
)
from .medical_records import DeletionReport, MedicalRecord, MedicalRecordStore, RecordList
from .medications import Medication, MedicationStore
from .outcomes import (
    CONSULTATION_FEE,
    AppointmentOutcome,
    AppointmentOutcomeStore,
    BillingStatus,
    PrescriptionStatus,
)
from .replenish import ReplenishRequest, ReplenishRequestStore, ReplenishStatus
from .users import Role, User, UserStore

__all__ = [
    "Appointment",
    "AppointmentOutcome",
    "AppointmentOutcomeStore",
    "AppointmentStatus",
    "AppointmentStore",
    "AuthorizationError",
    "AvailabilityStore",
    "BillingStatus",
    "CONSULTATION_FEE",
    "CsvTable",
    "Database",
    "DeletionReport",
    "DoctorAvailability",
    "DuplicateKeyError",
    "HospitalError",
    "IndexOutOfRangeError",
    "InsufficientStockError",
    "InvalidTransitionError",
    "MedicalRecord",
    "MedicalRecordStore",
    "Medication",
    "MedicationStore",
    "NotFoundError",
    "PersistenceError",
    "PrescriptionStatus",
    "RecordList",
    "ReplenishRequest",
    "ReplenishRequestStore",
    "ReplenishStatus",
    "Role",
    "Settings",
    "SlotUnavailableError",
    "TerminalStateError",
    "User",
    "UserStore",
    "ValidationError",
]
