"""Patient medical records with deduplicated entry lists."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .base import TableStore, parse_enum, require_identifier
from .csv_table import CsvTable
from .errors import DuplicateKeyError, IndexOutOfRangeError, NotFoundError, ValidationError

LOGGER = logging.getLogger(__name__)

MEDICAL_RECORD_HEADERS = (
    "PatientId",
    "Diagnosis",
    "Prescriptions",
    "Treatment Plans",
)
EMPTY_MARKER = "None"
SEPARATOR = ";"


class RecordList(Enum):
    DIAGNOSES = "diagnoses"
    PRESCRIPTIONS = "prescriptions"
    TREATMENT_PLANS = "treatment_plans"


@dataclass(frozen=True)
class MedicalRecord:
    patient_id: str
    diagnoses: Tuple[str, ...] = ()
    prescriptions: Tuple[str, ...] = ()
    treatment_plans: Tuple[str, ...] = ()

    def entries(self, kind: RecordList) -> Tuple[str, ...]:
        return getattr(self, kind.value)


@dataclass
class DeletionReport:
    """Outcome of a by-value deletion; values not present are reported, not raised."""

    removed: List[str] = field(default_factory=list)
    not_found: List[str] = field(default_factory=list)
    cleared: bool = False


def merge_unique(existing: Iterable[str], additions: Iterable[str]) -> Tuple[str, ...]:
    """Append ``additions`` to ``existing`` skipping exact duplicates, keeping first-seen order."""

    merged: List[str] = list(existing)
    for item in additions:
        if item not in merged:
            merged.append(item)
    return tuple(merged)


def _split_column(value: str) -> Tuple[str, ...]:
    """Split a stored column; entries keep their exact text, including spaces."""

    if not value.strip() or value.strip() == EMPTY_MARKER:
        return ()
    return merge_unique((), (item for item in value.split(SEPARATOR) if item))


def _join_column(values: Sequence[str]) -> str:
    return SEPARATOR.join(values) if values else EMPTY_MARKER


class MedicalRecordStore(TableStore[str, MedicalRecord]):
    """Medical records keyed by patient id."""

    entity_name = "medical record"

    @classmethod
    def at(cls, path: Path | str) -> "MedicalRecordStore":
        return cls(CsvTable(path, MEDICAL_RECORD_HEADERS))

    def create(self, patient_id: str) -> MedicalRecord:
        patient_id = require_identifier(patient_id, "patient_id")
        if patient_id in self._records:
            raise DuplicateKeyError(f"Medical record for patient {patient_id} already exists")
        return self._replace(MedicalRecord(patient_id=patient_id))

    def add(self, record: MedicalRecord, persist: bool = True) -> MedicalRecord:
        require_identifier(record.patient_id, "patient_id")
        if not persist:
            self._records[record.patient_id] = record
            return record
        if record.patient_id in self._records:
            raise DuplicateKeyError(
                f"Medical record for patient {record.patient_id} already exists"
            )
        return self._replace(record)

    def get(self, patient_id: str) -> MedicalRecord:
        record = self._records.get(patient_id)
        if record is None:
            raise NotFoundError(f"No medical record found for patient {patient_id}")
        return record

    def find(self, patient_id: str) -> Optional[MedicalRecord]:
        return self._records.get(patient_id)

    def append(
        self,
        patient_id: str,
        diagnoses: Optional[Iterable[str]] = None,
        prescriptions: Optional[Iterable[str]] = None,
        treatment_plans: Optional[Iterable[str]] = None,
    ) -> MedicalRecord:
        """Union-merge the supplied entries into the patient's lists.

        Matching is exact (case-sensitive, untrimmed); an entry already in a
        list is skipped so repeated appends are idempotent.
        """

        record = self.get(patient_id)
        changes: Dict[str, Tuple[str, ...]] = {}
        for kind, additions in (
            (RecordList.DIAGNOSES, diagnoses),
            (RecordList.PRESCRIPTIONS, prescriptions),
            (RecordList.TREATMENT_PLANS, treatment_plans),
        ):
            if additions is None:
                continue
            additions = list(additions)
            for item in additions:
                if not isinstance(item, str) or not item.strip():
                    raise ValidationError(f"{kind.value} entries must be non-empty strings")
                if SEPARATOR in item:
                    raise ValidationError(f"{kind.value} entries cannot contain '{SEPARATOR}'")
                if item.strip() == EMPTY_MARKER:
                    raise ValidationError(
                        f"{kind.value} entries cannot be '{EMPTY_MARKER}', which marks an empty list"
                    )
            changes[kind.value] = merge_unique(record.entries(kind), additions)

        updated = self._replace(replace(record, **changes))
        LOGGER.info("Medical record for %s updated (%s)", patient_id, ", ".join(changes) or "no lists")
        return updated

    def delete_by_index(
        self, patient_id: str, list_kind: RecordList | str, index: int
    ) -> MedicalRecord:
        kind = _parse_kind(list_kind)
        record = self.get(patient_id)
        entries = list(record.entries(kind))
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(entries):
            raise IndexOutOfRangeError(
                f"Index {index!r} is out of range for {kind.value} of patient {patient_id} "
                f"({len(entries)} entries)"
            )
        removed = entries.pop(index)
        updated = self._replace(replace(record, **{kind.value: tuple(entries)}))
        LOGGER.info("Removed %s entry %r for %s", kind.value, removed, patient_id)
        return updated

    def delete_by_value(
        self, patient_id: str, list_kind: RecordList | str, values: str
    ) -> DeletionReport:
        """Delete ``;``-joined values from one list.

        An empty selector clears the list. Absent values are collected in the
        report's ``not_found`` and do not prevent the others from being removed.
        """

        kind = _parse_kind(list_kind)
        record = self.get(patient_id)
        entries = list(record.entries(kind))
        report = DeletionReport()

        if values == "":
            report.removed = entries
            report.cleared = True
            entries = []
        else:
            for value in (item for item in values.split(SEPARATOR) if item):
                if value in entries:
                    entries.remove(value)
                    report.removed.append(value)
                else:
                    report.not_found.append(value)

        if report.removed:
            self._replace(replace(record, **{kind.value: tuple(entries)}))
        for value in report.not_found:
            LOGGER.info("%s entry not found for %s: %s", kind.value, patient_id, value)
        return report

    def reassign_patient(self, old_patient_id: str, new_patient_id: str) -> MedicalRecord:
        new_patient_id = require_identifier(new_patient_id, "new_patient_id")
        record = self.get(old_patient_id)
        if new_patient_id == old_patient_id:
            raise ValidationError("New patient id must differ from the old one")
        if new_patient_id in self._records:
            raise DuplicateKeyError(f"Medical record for patient {new_patient_id} already exists")
        records = {
            (new_patient_id if key == old_patient_id else key): (
                replace(value, patient_id=new_patient_id) if key == old_patient_id else value
            )
            for key, value in self._records.items()
        }
        self._commit(records)
        return records[new_patient_id]

    def _key(self, record: MedicalRecord) -> str:
        return record.patient_id

    def _to_row(self, record: MedicalRecord) -> Sequence[str]:
        return [
            record.patient_id,
            _join_column(record.diagnoses),
            _join_column(record.prescriptions),
            _join_column(record.treatment_plans),
        ]

    def _from_row(self, row: Sequence[str]) -> MedicalRecord:
        return MedicalRecord(
            patient_id=require_identifier(row[0], "patient_id"),
            diagnoses=_split_column(row[1]),
            prescriptions=_split_column(row[2]),
            treatment_plans=_split_column(row[3]),
        )


def _parse_kind(list_kind: RecordList | str) -> RecordList:
    if isinstance(list_kind, str):
        try:
            return RecordList(list_kind.strip().lower())
        except ValueError:
            pass
    return parse_enum(RecordList, list_kind, "medical record list")
