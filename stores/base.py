"""Shared behaviour for the CSV-backed in-memory stores."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Generic, Iterator, List, Sequence, Type, TypeVar

from .csv_table import CsvTable
from .errors import HospitalError, ValidationError

LOGGER = logging.getLogger(__name__)

K = TypeVar("K")
R = TypeVar("R")
E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: Type[E], value: object, label: str) -> E:
    """Resolve ``value`` to a member of ``enum_cls`` by member or case-insensitive name."""

    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls[value.strip().upper()]
        except KeyError:
            pass
    allowed = ", ".join(member.name for member in enum_cls)
    raise ValidationError(f"Invalid {label} {value!r}; expected one of: {allowed}")


def require_positive(amount: object, label: str = "amount") -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"{label} must be a positive integer, got {amount!r}")
    return amount


def require_non_negative(value: object, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{label} must be a non-negative integer, got {value!r}")
    return value


def require_identifier(value: object, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} must be a non-empty string")
    return value.strip()


class TableStore(Generic[K, R]):
    """In-memory map of immutable records mirrored to one CSV table.

    Mutations build the next version of the map, write it, and swap it in
    only after the write succeeded, so a failed write leaves both memory and
    disk untouched.
    """

    entity_name = "record"

    def __init__(self, table: CsvTable) -> None:
        self._table = table
        self._records: Dict[K, R] = {}

    @property
    def table(self) -> CsvTable:
        return self._table

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __iter__(self) -> Iterator[R]:
        return iter(list(self._records.values()))

    def all(self) -> List[R]:
        return list(self._records.values())

    def load(self) -> int:
        """Populate the store from its CSV table, skipping malformed rows."""

        loaded = 0
        for row in self._table.read_rows():
            try:
                record = self._from_row(row)
            except (ValueError, IndexError, HospitalError) as exc:
                LOGGER.warning(
                    "Skipping invalid %s row %s in %s: %s",
                    self.entity_name,
                    row,
                    self._table.path,
                    exc,
                )
                continue
            self._records[self._key(record)] = record
            loaded += 1
        self._after_load()
        LOGGER.info("Loaded %d %s records from %s", loaded, self.entity_name, self._table.path)
        return loaded

    def save(self) -> None:
        """Rewrite the whole table from the current in-memory state."""

        self._commit(dict(self._records))

    def _commit(self, records: Dict[K, R]) -> None:
        self._table.write_rows(self._to_row(record) for record in records.values())
        self._records = records

    def _replace(self, record: R) -> R:
        records = dict(self._records)
        records[self._key(record)] = record
        self._commit(records)
        return record

    def _after_load(self) -> None:
        """Hook for stores that derive counters from the loaded records."""

    def _key(self, record: R) -> K:
        raise NotImplementedError

    def _to_row(self, record: R) -> Sequence[str]:
        raise NotImplementedError

    def _from_row(self, row: Sequence[str]) -> R:
        raise NotImplementedError
