import csv
from pathlib import Path
from typing import Iterable, Sequence

from stores import Database
from stores.appointments import APPOINTMENT_HEADERS
from stores.availability import AVAILABILITY_HEADERS
from stores.database import (
    APPOINTMENT_FILE,
    AVAILABILITY_FILE,
    MEDICAL_RECORD_FILE,
    MEDICATION_FILE,
    OUTCOME_FILE,
    PATIENT_FILE,
    REPLENISH_FILE,
    STAFF_FILE,
)
from stores.medical_records import MEDICAL_RECORD_HEADERS
from stores.medications import MEDICATION_HEADERS
from stores.outcomes import OUTCOME_HEADERS
from stores.replenish import REPLENISH_HEADERS
from stores.users import PATIENT_HEADERS, STAFF_HEADERS

STAFF_ROWS = [
    ["DOC00001", "Dr Tan", "Male", "doc1", "pw", "1980-02-01", "91234567", "tan@example.com", "", "p00001"],
    ["DOC00002", "Dr Lim", "Female", "doc2", "pw", "1975-06-12", "", "", "", ""],
    ["PHM00001", "Pat Ng", "Female", "pharm1", "pw", "1990-03-04", "", "", "LIC-778", ""],
    ["ADM00001", "Ada Koh", "Female", "admin1", "pw", "", "", "", "", ""],
]
PATIENT_ROWS = [
    ["p00001", "Alice", "Female", "alice", "pw", "2000-01-01", "81112222", "alice@example.com", "O+"],
    ["p00002", "Bob", "Male", "bob", "pw", "1995-05-05", "", "", "A-"],
]
MEDICATION_ROWS = [
    ["Paracetamol", "100", "10", "100", "5.00"],
    ["Ibuprofen", "50", "10", "50", "2.50"],
    ["Amoxicillin", "20", "5", "20", "12.00"],
]
MEDICAL_RECORD_ROWS = [
    ["p00001", "Hypertension", "None", "None"],
    ["p00002", "None", "None", "None"],
]


def write_csv(path: Path, headers: Sequence[str], rows: Iterable[Sequence[str]]) -> Path:
    with Path(path).open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, lineterminator="\n")
        writer.writerow(headers)
        writer.writerows(rows)
    return Path(path)


def read_csv(path: Path):
    with Path(path).open("r", encoding="utf-8", newline="") as handle:
        return list(csv.reader(handle))


def seed_data_dir(directory: Path) -> Path:
    directory = Path(directory)
    write_csv(directory / STAFF_FILE, STAFF_HEADERS, STAFF_ROWS)
    write_csv(directory / PATIENT_FILE, PATIENT_HEADERS, PATIENT_ROWS)
    write_csv(directory / MEDICATION_FILE, MEDICATION_HEADERS, MEDICATION_ROWS)
    write_csv(directory / MEDICAL_RECORD_FILE, MEDICAL_RECORD_HEADERS, MEDICAL_RECORD_ROWS)
    write_csv(directory / APPOINTMENT_FILE, APPOINTMENT_HEADERS, [])
    write_csv(directory / OUTCOME_FILE, OUTCOME_HEADERS, [])
    write_csv(directory / REPLENISH_FILE, REPLENISH_HEADERS, [])
    write_csv(directory / AVAILABILITY_FILE, AVAILABILITY_HEADERS, [])
    return directory


def open_seeded_database(directory: Path) -> Database:
    return Database.open(seed_data_dir(directory))
