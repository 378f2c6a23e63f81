"""Administrator workflows: staff, inventory and replenishment approval."""

from __future__ import annotations

import logging
from dataclasses import fields, replace
from datetime import date
from typing import List, Optional

from stores import (
    Appointment,
    HospitalError,
    Medication,
    ReplenishRequest,
    ReplenishStatus,
    Role,
    User,
    ValidationError,
)
from stores.base import parse_enum

from .base import RoleController
from .patient import AppointmentWithOutcome

LOGGER = logging.getLogger(__name__)

STAFF_FIELDS = frozenset(item.name for item in fields(User)) - {"role"}


class AdminController(RoleController):
    role = Role.ADMIN

    # Staff

    def staff(self, role: Optional[Role | str] = None) -> List[User]:
        roles = [role] if role is not None else [Role.DOCTOR, Role.PHARMACIST, Role.ADMIN]
        members: List[User] = []
        for item in roles:
            members.extend(self.database.users.by_role(item))
        return sorted(members, key=lambda user: user.user_id)

    def add_staff(
        self,
        role: Role | str,
        *,
        name: str,
        gender: str,
        username: str,
        password: str,
        date_of_birth: Optional[date] = None,
        contact_number: str = "",
        email: str = "",
        license_number: str = "",
    ) -> User:
        role = parse_enum(Role, role, "role")
        if not role.is_staff:
            raise ValidationError("Patients are registered through self-service, not staff management")
        member = User(
            user_id=self.database.users.generate_id(role),
            role=role,
            name=name,
            gender=gender,
            username=username,
            password=password,
            date_of_birth=date_of_birth,
            contact_number=contact_number,
            email=email,
        )
        if member.role is Role.PHARMACIST:
            member = replace(member, license_number=license_number)
        return self.database.users.add(member)

    def update_staff(self, staff_id: str, **changes) -> User:
        """Apply field changes to a staff member.

        A new ``user_id`` is carried over to the member's appointments,
        availability or replenish requests. If that fails the account change
        is undone.
        """

        existing = self.database.users.get(staff_id)
        if not existing.role.is_staff:
            raise ValidationError(f"{staff_id} is not a staff member")
        unknown = sorted(set(changes) - STAFF_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown staff field(s): {', '.join(unknown)}")
        updated = self.database.users.update(staff_id, replace(existing, **changes))
        if updated.user_id != staff_id:
            try:
                self._carry_over_id(existing, updated.user_id)
            except HospitalError:
                LOGGER.error("Moving records from %s to %s failed; restoring the old id", staff_id, updated.user_id)
                self.database.users.update(updated.user_id, existing)
                raise
        return updated

    def remove_staff(self, user_id: str) -> User:
        member = self.database.users.get(user_id)
        if not member.role.is_staff:
            raise ValidationError(f"{user_id} is not a staff member")
        if user_id == self.user_id:
            raise ValidationError("Administrators cannot remove their own account")
        return self.database.users.remove(user_id)

    # Inventory

    def medications(self) -> List[Medication]:
        return sorted(self.database.medications.all(), key=lambda medication: medication.name)

    def add_medication(self, name: str, initial_stock: int, low_stock_alert: int, price: float) -> Medication:
        return self.database.medications.add(Medication.new(name, initial_stock, low_stock_alert, price))

    def delete_medication(self, name: str) -> Medication:
        return self.database.medications.delete(name)

    def increase_stock(self, name: str, amount: int) -> Medication:
        return self.database.medications.increase_stock(name, amount)

    def decrease_stock(self, name: str, amount: int) -> Medication:
        return self.database.medications.decrease_stock(name, amount)

    def set_stock_level(self, name: str, level: int) -> Medication:
        return self.database.medications.update_stock_level(name, level)

    def set_low_stock_alert(self, name: str, value: int) -> Medication:
        return self.database.medications.update_low_stock_alert(name, value)

    def set_price(self, name: str, price: float) -> Medication:
        return self.database.medications.update_price(name, price)

    # Replenishment

    def replenish_requests(self, active_only: bool = True) -> List[ReplenishRequest]:
        if active_only:
            return self.database.replenish_requests.list_active()
        return sorted(self.database.replenish_requests, key=lambda request: request.request_id)

    def approve_request(self, request_id: int) -> ReplenishRequest:
        return self.database.replenish_requests.update_status(request_id, ReplenishStatus.APPROVED)

    def deny_request(self, request_id: int) -> ReplenishRequest:
        return self.database.replenish_requests.update_status(request_id, ReplenishStatus.DENIED)

    # Appointments

    def appointments(self) -> List[AppointmentWithOutcome]:
        ordered: List[Appointment] = sorted(
            self.database.appointments,
            key=lambda appointment: (appointment.date_time, appointment.appointment_id),
        )
        rows = []
        for appointment in ordered:
            outcome = None
            if appointment.appointment_id in self.database.outcomes:
                outcome = self.database.outcomes.get(appointment.appointment_id)
            rows.append(AppointmentWithOutcome(appointment, outcome))
        return rows

    def _carry_over_id(self, previous: User, new_id: str) -> None:
        old_id = previous.user_id
        if previous.role is Role.DOCTOR:
            moved = 0
            if any(a.doctor_id == old_id for a in self.database.appointments):
                moved = self.database.appointments.reassign_doctor(old_id, new_id)
                LOGGER.info("Moved %d appointments from %s to %s", moved, old_id, new_id)
            if self.database.availability.has_schedule(old_id):
                try:
                    self.database.availability.reassign_doctor(old_id, new_id)
                except HospitalError:
                    if moved:
                        self.database.appointments.reassign_doctor(new_id, old_id)
                    raise
        elif previous.role is Role.PHARMACIST:
            if any(r.staff_id == old_id for r in self.database.replenish_requests):
                count = self.database.replenish_requests.reassign_staff(old_id, new_id)
                LOGGER.info("Moved %d replenish requests from %s to %s", count, old_id, new_id)
