"""Pharmacist replenish requests and their approval workflow."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

from .base import TableStore, parse_enum, require_identifier, require_positive
from .csv_table import CsvTable
from .errors import (
    HospitalError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .medications import MedicationStore

LOGGER = logging.getLogger(__name__)

REPLENISH_HEADERS = (
    "Request Id",
    "PharmacistId",
    "MedicineId",
    "Status",
    "Quantity",
    "Date",
)


class ReplenishStatus(Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"


@dataclass(frozen=True)
class ReplenishRequest:
    """A pharmacist's ask to restock ``amount`` units of a medication."""

    request_id: int
    staff_id: str
    medication_id: str
    status: ReplenishStatus
    amount: int
    request_date: date

    @property
    def is_terminal(self) -> bool:
        return self.status is not ReplenishStatus.PENDING


class ReplenishRequestStore(TableStore[int, ReplenishRequest]):
    """Replenish requests keyed by a process-wide monotonic integer id.

    Approving a request adds its amount to the medication's current stock in
    the injected :class:`MedicationStore`.
    """

    entity_name = "replenish request"

    def __init__(self, table: CsvTable, medications: MedicationStore) -> None:
        super().__init__(table)
        self._medications = medications
        self._next_id = 1

    @classmethod
    def at(cls, path: Path | str, medications: MedicationStore) -> "ReplenishRequestStore":
        return cls(CsvTable(path, REPLENISH_HEADERS), medications)

    def create(
        self,
        staff_id: str,
        medication_id: str,
        amount: int,
        request_date: Optional[date] = None,
    ) -> int:
        staff_id = require_identifier(staff_id, "staff_id")
        medication_id = require_identifier(medication_id, "medication_id")
        amount = require_positive(amount)
        if request_date is not None and not isinstance(request_date, date):
            raise ValidationError("request_date must be a date instance")
        self._medications.get(medication_id)

        request = ReplenishRequest(
            request_id=self._next_id,
            staff_id=staff_id,
            medication_id=medication_id,
            status=ReplenishStatus.PENDING,
            amount=amount,
            request_date=request_date or date.today(),
        )
        self._replace(request)
        self._next_id += 1
        LOGGER.info(
            "Replenish request %d created by %s for %d x %s",
            request.request_id,
            staff_id,
            amount,
            medication_id,
        )
        return request.request_id

    def get(self, request_id: int) -> ReplenishRequest:
        request = self._records.get(request_id)
        if request is None:
            raise NotFoundError(f"Replenish request {request_id} not found")
        return request

    def update_status(self, request_id: int, new_status: ReplenishStatus | str) -> ReplenishRequest:
        """Approve or deny a pending request.

        Approval increases the medication's stock by the requested amount.
        Requests that are already APPROVED or DENIED cannot change again.
        """

        status = parse_enum(ReplenishStatus, new_status, "replenish status")
        request = self.get(request_id)
        if request.status is not ReplenishStatus.PENDING or status is ReplenishStatus.PENDING:
            raise InvalidTransitionError(
                f"Replenish request {request_id} cannot move from "
                f"{request.status.value} to {status.value}"
            )

        updated = replace(request, status=status)
        if status is ReplenishStatus.DENIED:
            self._replace(updated)
            LOGGER.info("Replenish request %d denied", request_id)
            return updated

        self._medications.increase_stock(request.medication_id, request.amount)
        try:
            self._replace(updated)
        except PersistenceError as exc:
            LOGGER.error(
                "Rolling back stock increase for replenish request %d after write failure: %s",
                request_id,
                exc,
            )
            try:
                self._medications.decrease_stock(request.medication_id, request.amount)
            except HospitalError as rollback_exc:
                LOGGER.error(
                    "Stock rollback for replenish request %d failed; %s keeps the extra %d units: %s",
                    request_id,
                    request.medication_id,
                    request.amount,
                    rollback_exc,
                )
                raise exc from rollback_exc
            raise
        LOGGER.info(
            "Replenish request %d approved; %s restocked by %d",
            request_id,
            request.medication_id,
            request.amount,
        )
        return updated

    def list_active(self) -> List[ReplenishRequest]:
        return sorted(
            (request for request in self._records.values() if not request.is_terminal),
            key=lambda request: request.request_id,
        )

    def reassign_staff(self, old_staff_id: str, new_staff_id: str) -> int:
        """Move requests from one staff id to another; returns how many changed."""

        new_staff_id = require_identifier(new_staff_id, "new_staff_id")
        records = dict(self._records)
        changed = 0
        for request_id, request in records.items():
            if request.staff_id == old_staff_id:
                records[request_id] = replace(request, staff_id=new_staff_id)
                changed += 1
        if not changed:
            raise NotFoundError(f"No replenish requests found for staff id {old_staff_id}")
        self._commit(records)
        return changed

    def _after_load(self) -> None:
        if self._records:
            self._next_id = max(self._next_id, max(self._records) + 1)

    def _key(self, record: ReplenishRequest) -> int:
        return record.request_id

    def _to_row(self, record: ReplenishRequest) -> Sequence[str]:
        return [
            str(record.request_id),
            record.staff_id,
            record.medication_id,
            record.status.value,
            str(record.amount),
            record.request_date.isoformat(),
        ]

    def _from_row(self, row: Sequence[str]) -> ReplenishRequest:
        return ReplenishRequest(
            request_id=int(row[0]),
            staff_id=require_identifier(row[1], "staff_id"),
            medication_id=require_identifier(row[2], "medication_id"),
            status=parse_enum(ReplenishStatus, row[3], "replenish status"),
            amount=require_positive(int(row[4])),
            request_date=date.fromisoformat(row[5].strip()),
        )
