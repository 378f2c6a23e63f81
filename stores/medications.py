"""Medication inventory store."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from difflib import SequenceMatcher
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .base import TableStore, require_identifier, require_non_negative, require_positive
from .csv_table import CsvTable
from .errors import DuplicateKeyError, InsufficientStockError, NotFoundError, ValidationError

LOGGER = logging.getLogger(__name__)

MEDICATION_HEADERS = (
    "Medicine Name",
    "Initial Stock",
    "Low Stock Level Alert",
    "Current Stock",
    "Price",
)
# Outcome rows join medication names with this separator.
LIST_SEPARATOR = ";"


@dataclass(frozen=True)
class Medication:
    """Stock and price information for one medication, keyed by name."""

    name: str
    initial_stock: int
    low_stock_level_alert: int
    current_stock: int
    price: float

    @classmethod
    def new(
        cls, name: str, initial_stock: int, low_stock_level_alert: int, price: float
    ) -> "Medication":
        """Create a medication whose current stock starts at its initial stock."""

        return cls(
            name=name,
            initial_stock=initial_stock,
            low_stock_level_alert=low_stock_level_alert,
            current_stock=initial_stock,
            price=price,
        )

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.low_stock_level_alert

    def validate(self) -> "Medication":
        require_identifier(self.name, "name")
        if LIST_SEPARATOR in self.name:
            raise ValidationError(f"Medication names cannot contain '{LIST_SEPARATOR}': {self.name!r}")
        require_non_negative(self.initial_stock, "initial_stock")
        require_non_negative(self.low_stock_level_alert, "low_stock_level_alert")
        require_non_negative(self.current_stock, "current_stock")
        _require_price(self.price)
        return self


def _require_price(price: object) -> float:
    if isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
        raise ValidationError(f"price must be a non-negative number, got {price!r}")
    return float(price)


class MedicationStore(TableStore[str, Medication]):
    """Inventory keyed by medication name."""

    entity_name = "medication"

    @classmethod
    def at(cls, path: Path | str) -> "MedicationStore":
        return cls(CsvTable(path, MEDICATION_HEADERS))

    def add(self, medication: Medication, persist: bool = True) -> Medication:
        """Insert a medication.

        User-initiated adds (``persist=True``) reject an existing name and
        rewrite the table. Bulk loads overwrite silently without writing.
        """

        medication = medication.validate()
        medication = replace(medication, name=medication.name.strip(), price=float(medication.price))
        if not persist:
            self._records[medication.name] = medication
            return medication

        if medication.name in self._records:
            raise DuplicateKeyError(f"Medication '{medication.name}' already exists")
        self._replace(medication)
        LOGGER.info("Added medication %s with stock %d", medication.name, medication.current_stock)
        return medication

    def get(self, name: str) -> Medication:
        medication = self._records.get(name)
        if medication is None:
            raise NotFoundError(f"Medication '{name}' not found")
        return medication

    def find(self, name: str) -> Optional[Medication]:
        return self._records.get(name)

    def increase_stock(self, name: str, amount: int) -> Medication:
        amount = require_positive(amount)
        current = self.get(name)
        updated = self._replace(replace(current, current_stock=current.current_stock + amount))
        LOGGER.info(
            "Increased stock of %s by %d to %d", name, amount, updated.current_stock
        )
        return updated

    def decrease_stock(self, name: str, amount: int) -> Medication:
        """Remove ``amount`` units, rejecting the change if stock would go negative."""

        amount = require_positive(amount)
        current = self.get(name)
        if amount > current.current_stock:
            raise InsufficientStockError(
                f"Cannot decrease stock of '{name}' by {amount}; "
                f"current stock is {current.current_stock}"
            )
        updated = self._replace(replace(current, current_stock=current.current_stock - amount))
        LOGGER.info(
            "Decreased stock of %s by %d to %d", name, amount, updated.current_stock
        )
        self._warn_if_low(updated)
        return updated

    def update_stock_level(self, name: str, level: int) -> Medication:
        level = require_non_negative(level, "stock level")
        current = self.get(name)
        updated = self._replace(replace(current, current_stock=level))
        self._warn_if_low(updated)
        return updated

    def update_low_stock_alert(self, name: str, value: int) -> Medication:
        value = require_non_negative(value, "low stock level alert")
        current = self.get(name)
        updated = self._replace(replace(current, low_stock_level_alert=value))
        self._warn_if_low(updated)
        return updated

    def update_price(self, name: str, price: float) -> Medication:
        price = _require_price(price)
        current = self.get(name)
        return self._replace(replace(current, price=price))

    def delete(self, name: str) -> Medication:
        medication = self.get(name)
        records = dict(self._records)
        del records[name]
        self._commit(records)
        LOGGER.info("Deleted medication %s", name)
        return medication

    def is_low_stock(self, name: str) -> bool:
        return self.get(name).is_low_stock

    def low_stock(self) -> List[Medication]:
        return [medication for medication in self._records.values() if medication.is_low_stock]

    def prices_for(self, names: Iterable[str]) -> List[float]:
        """Return the current price of each name in order.

        Every name must resolve; an unknown name raises ``NotFoundError``.
        """

        names = list(names)
        missing = [name for name in names if name not in self._records]
        if missing:
            raise NotFoundError(f"Unknown medication(s): {', '.join(missing)}")
        return [self._records[name].price for name in names]

    def find_similar(self, name: str, threshold: float = 0.65) -> List[Medication]:
        """Return medications whose names resemble ``name``, best match first."""

        needle = name.strip().lower()
        if not needle:
            return []
        scored = []
        for medication in self._records.values():
            score = SequenceMatcher(None, needle, medication.name.lower()).ratio()
            if score >= threshold:
                scored.append((score, medication))
        scored.sort(key=lambda item: (-item[0], item[1].name))
        return [medication for _, medication in scored]

    @staticmethod
    def _warn_if_low(medication: Medication) -> None:
        if medication.is_low_stock:
            LOGGER.warning(
                "Medication %s is at or below its low stock alert (%d <= %d)",
                medication.name,
                medication.current_stock,
                medication.low_stock_level_alert,
            )

    def _key(self, record: Medication) -> str:
        return record.name

    def _to_row(self, record: Medication) -> Sequence[str]:
        return [
            record.name,
            str(record.initial_stock),
            str(record.low_stock_level_alert),
            str(record.current_stock),
            f"{record.price:.2f}",
        ]

    def _from_row(self, row: Sequence[str]) -> Medication:
        return Medication(
            name=require_identifier(row[0], "name"),
            initial_stock=int(row[1]),
            low_stock_level_alert=int(row[2]),
            current_stock=int(row[3]),
            price=float(row[4]),
        ).validate()
