"""Role-scoped operations over the hospital stores."""

from stores import Database, Role, User

from .admin import AdminController
from .base import RoleController
from .doctor import DoctorController
from .patient import AppointmentWithOutcome, PatientController, register_patient
from .pharmacist import PharmacistController

CONTROLLERS = {
    Role.PATIENT: PatientController,
    Role.DOCTOR: DoctorController,
    Role.PHARMACIST: PharmacistController,
    Role.ADMIN: AdminController,
}


def controller_for(user: User, database: Database) -> RoleController:
    """Return the controller matching the user's role."""

    return CONTROLLERS[user.role](user, database)


__all__ = [
    "AdminController",
    "AppointmentWithOutcome",
    "CONTROLLERS",
    "DoctorController",
    "PatientController",
    "PharmacistController",
    "RoleController",
    "controller_for",
    "register_patient",
]
