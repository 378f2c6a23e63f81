"""Appointment outcomes and the billing derived from them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import List, Sequence, Tuple

from .base import TableStore, parse_enum, require_identifier
from .csv_table import CsvTable
from .errors import DuplicateKeyError, InvalidTransitionError, NotFoundError, ValidationError
from .medications import LIST_SEPARATOR, MedicationStore

LOGGER = logging.getLogger(__name__)

CONSULTATION_FEE = 10.0

OUTCOME_HEADERS = (
    "AppointmentId",
    "Service Type",
    "MedicationId",
    "Consultation Notes",
    "Status",
    "Consultation Fee",
    "Medication Price",
    "Total Amount",
    "Payment Status",
)


class PrescriptionStatus(Enum):
    PENDING = "PENDING"
    DISPENSED = "DISPENSED"
    NONE = "NONE"


class BillingStatus(Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"


@dataclass(frozen=True)
class AppointmentOutcome:
    """Clinical and billing result of an appointment.

    Fees are a snapshot of medication prices at creation time; later price
    changes never alter an existing bill.
    """

    appointment_id: int
    service_type: str
    medication_ids: Tuple[str, ...]
    consultation_notes: str
    prescription_status: PrescriptionStatus
    consultation_fee: float
    medication_fees: Tuple[float, ...]
    total_amount: float
    billing_status: BillingStatus = BillingStatus.UNPAID

    @property
    def outcome_id(self) -> int:
        return self.appointment_id

    @property
    def is_paid(self) -> bool:
        return self.billing_status is BillingStatus.PAID


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(LIST_SEPARATOR) if item.strip()]


class AppointmentOutcomeStore(TableStore[int, AppointmentOutcome]):
    """Outcomes keyed by appointment id; one outcome per appointment."""

    entity_name = "appointment outcome"

    def __init__(self, table: CsvTable, medications: MedicationStore) -> None:
        super().__init__(table)
        self._medications = medications

    @classmethod
    def at(cls, path: Path | str, medications: MedicationStore) -> "AppointmentOutcomeStore":
        return cls(CsvTable(path, OUTCOME_HEADERS), medications)

    def create(
        self,
        appointment_id: int,
        service_type: str,
        medication_ids: Sequence[str],
        notes: str,
        prescription_status: PrescriptionStatus | str = PrescriptionStatus.PENDING,
    ) -> AppointmentOutcome:
        """Record an outcome and snapshot its bill.

        Every medication id must exist in the medication store; the total is
        ``CONSULTATION_FEE`` plus the current price of each medication.
        """

        if isinstance(appointment_id, bool) or not isinstance(appointment_id, int):
            raise ValidationError("appointment_id must be an integer")
        service_type = require_identifier(service_type, "service_type")
        status = parse_enum(PrescriptionStatus, prescription_status, "prescription status")
        medication_ids = tuple(medication_ids)
        if any(LIST_SEPARATOR in name for name in medication_ids):
            raise ValidationError(f"Medication ids cannot contain '{LIST_SEPARATOR}'")
        if appointment_id in self._records:
            raise DuplicateKeyError(f"Appointment {appointment_id} already has an outcome")

        fees = tuple(self._medications.prices_for(medication_ids))
        outcome = AppointmentOutcome(
            appointment_id=appointment_id,
            service_type=service_type,
            medication_ids=medication_ids,
            consultation_notes=notes or "",
            prescription_status=status,
            consultation_fee=CONSULTATION_FEE,
            medication_fees=fees,
            total_amount=round(CONSULTATION_FEE + sum(fees), 2),
        )
        self._replace(outcome)
        LOGGER.info(
            "Outcome recorded for appointment %d; total %.2f",
            appointment_id,
            outcome.total_amount,
        )
        return outcome

    def get(self, outcome_id: int) -> AppointmentOutcome:
        outcome = self._records.get(outcome_id)
        if outcome is None:
            raise NotFoundError(f"No appointment outcome found for appointment {outcome_id}")
        return outcome

    def mark_paid(self, outcome_id: int) -> AppointmentOutcome:
        """Settle the bill; paying an already paid bill changes nothing."""

        outcome = self.get(outcome_id)
        if outcome.is_paid:
            LOGGER.debug("Outcome %d is already paid", outcome_id)
            return outcome
        updated = self._replace(replace(outcome, billing_status=BillingStatus.PAID))
        LOGGER.info("Outcome %d paid (%.2f)", outcome_id, updated.total_amount)
        return updated

    def update_prescription_status(
        self, outcome_id: int, status: PrescriptionStatus | str
    ) -> AppointmentOutcome:
        status = parse_enum(PrescriptionStatus, status, "prescription status")
        outcome = self.get(outcome_id)
        if (
            outcome.prescription_status is PrescriptionStatus.DISPENSED
            and status is not PrescriptionStatus.DISPENSED
        ):
            raise InvalidTransitionError(
                f"Prescription for appointment {outcome_id} is already dispensed"
            )
        return self._replace(replace(outcome, prescription_status=status))

    def pending_prescriptions(self) -> List[AppointmentOutcome]:
        return sorted(
            (
                outcome
                for outcome in self._records.values()
                if outcome.prescription_status is PrescriptionStatus.PENDING
            ),
            key=lambda outcome: outcome.appointment_id,
        )

    def unpaid(self) -> List[AppointmentOutcome]:
        return [outcome for outcome in self._records.values() if not outcome.is_paid]

    def remove(self, outcome_id: int) -> AppointmentOutcome:
        outcome = self.get(outcome_id)
        records = dict(self._records)
        del records[outcome_id]
        self._commit(records)
        return outcome

    def _key(self, record: AppointmentOutcome) -> int:
        return record.appointment_id

    def _to_row(self, record: AppointmentOutcome) -> Sequence[str]:
        return [
            str(record.appointment_id),
            record.service_type,
            LIST_SEPARATOR.join(record.medication_ids),
            record.consultation_notes,
            record.prescription_status.value,
            f"{record.consultation_fee:.2f}",
            LIST_SEPARATOR.join(f"{fee:.2f}" for fee in record.medication_fees),
            f"{record.total_amount:.2f}",
            record.billing_status.value,
        ]

    def _from_row(self, row: Sequence[str]) -> AppointmentOutcome:
        medication_ids = tuple(_split(row[2]))
        fee_column = row[5].strip()
        if fee_column:
            consultation_fee = float(fee_column)
            fees = tuple(float(fee) for fee in _split(row[6]))
            if len(fees) != len(medication_ids):
                raise ValueError("medication fee count does not match medication ids")
            total = float(row[7]) if row[7].strip() else round(consultation_fee + sum(fees), 2)
        else:
            # Rows written without the fee columns are priced from the loaded inventory.
            consultation_fee = CONSULTATION_FEE
            fees = tuple(self._medications.prices_for(medication_ids))
            total = round(consultation_fee + sum(fees), 2)

        billing_raw = row[8].strip() if len(row) > 8 else ""
        return AppointmentOutcome(
            appointment_id=int(row[0]),
            service_type=row[1].strip(),
            medication_ids=medication_ids,
            consultation_notes=row[3],
            prescription_status=parse_enum(PrescriptionStatus, row[4], "prescription status"),
            consultation_fee=consultation_fee,
            medication_fees=fees,
            total_amount=total,
            billing_status=parse_enum(BillingStatus, billing_raw or "UNPAID", "billing status"),
        )
