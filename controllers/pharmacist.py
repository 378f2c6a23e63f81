"""Pharmacist workflows."""

from __future__ import annotations

import logging
from collections import Counter
from typing import List

from stores import (
    AppointmentOutcome,
    HospitalError,
    InsufficientStockError,
    InvalidTransitionError,
    Medication,
    PrescriptionStatus,
    ReplenishRequest,
    Role,
)

from .base import RoleController

LOGGER = logging.getLogger(__name__)


class PharmacistController(RoleController):
    role = Role.PHARMACIST

    def pending_prescriptions(self) -> List[AppointmentOutcome]:
        return self.database.outcomes.pending_prescriptions()

    def outcome(self, appointment_id: int) -> AppointmentOutcome:
        return self.database.outcomes.get(appointment_id)

    def dispense(self, appointment_id: int) -> AppointmentOutcome:
        """Hand out every medication on a pending prescription.

        Stock for all medications is checked before any is taken, and the
        decrements are reversed if marking the prescription fails.
        """

        outcome = self.database.outcomes.get(appointment_id)
        if outcome.prescription_status is not PrescriptionStatus.PENDING:
            raise InvalidTransitionError(
                f"Prescription for appointment {appointment_id} is "
                f"{outcome.prescription_status.value}, not PENDING"
            )

        quantities = Counter(outcome.medication_ids)
        for name, quantity in quantities.items():
            medication = self.database.medications.get(name)
            if medication.current_stock < quantity:
                raise InsufficientStockError(
                    f"Cannot dispense {quantity} x {name}: only {medication.current_stock} in stock"
                )

        taken = []
        try:
            for name, quantity in quantities.items():
                self.database.medications.decrease_stock(name, quantity)
                taken.append((name, quantity))
            updated = self.database.outcomes.update_prescription_status(
                appointment_id, PrescriptionStatus.DISPENSED
            )
        except HospitalError:
            LOGGER.error("Dispensing for appointment %d failed; restoring stock", appointment_id)
            for name, quantity in taken:
                self.database.medications.increase_stock(name, quantity)
            raise
        LOGGER.info("%s dispensed prescription for appointment %d", self.user_id, appointment_id)
        return updated

    def inventory(self) -> List[Medication]:
        return sorted(self.database.medications.all(), key=lambda medication: medication.name)

    def low_stock(self) -> List[Medication]:
        return self.database.medications.low_stock()

    def search_medications(self, name: str) -> List[Medication]:
        return self.database.medications.find_similar(name)

    def submit_replenish_request(self, medication_name: str, amount: int) -> int:
        return self.database.replenish_requests.create(self.user_id, medication_name, amount)

    def my_replenish_requests(self) -> List[ReplenishRequest]:
        return sorted(
            (
                request
                for request in self.database.replenish_requests
                if request.staff_id == self.user_id
            ),
            key=lambda request: request.request_id,
        )
