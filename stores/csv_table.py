"""Whole-table CSV persistence used by every store."""

from __future__ import annotations

import csv
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Sequence

from .errors import PersistenceError

LOGGER = logging.getLogger(__name__)


class CsvTable:
    """A CSV file with a fixed header whose rows are read and written positionally.

    Reads skip the header and pad short rows with empty strings. Writes
    replace the whole file through a temporary sibling so a failed write
    never leaves a truncated table behind.
    """

    def __init__(self, path: Path | str, headers: Sequence[str]) -> None:
        if not headers:
            raise ValueError("headers must not be empty")
        self.path = Path(path)
        self.headers = list(headers)

    def read_rows(self) -> List[List[str]]:
        if not self.path.exists():
            LOGGER.warning("CSV table %s does not exist; starting empty", self.path)
            return []

        try:
            with self.path.open("r", encoding="utf-8-sig", newline="") as handle:
                reader = csv.reader(handle)
                header = next(reader, None)
                if header is None:
                    return []
                width = max(len(header), len(self.headers))
                rows: List[List[str]] = []
                for line_number, row in enumerate(reader, start=2):
                    if not row or not any(cell.strip() for cell in row):
                        LOGGER.debug("Skipping blank line %d in %s", line_number, self.path)
                        continue
                    if len(row) < width:
                        row = row + [""] * (width - len(row))
                    rows.append(row)
        except (OSError, csv.Error) as exc:
            raise PersistenceError(f"Failed to read CSV table {self.path}: {exc}") from exc

        LOGGER.debug("Loaded %d rows from %s", len(rows), self.path)
        return rows

    def write_rows(self, rows: Iterable[Sequence[str]]) -> None:
        directory = self.path.parent
        temp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                newline="",
                dir=directory,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                temp_name = handle.name
                writer = csv.writer(handle, lineterminator="\n")
                writer.writerow(self.headers)
                count = 0
                for row in rows:
                    writer.writerow(row)
                    count += 1
            os.replace(temp_name, self.path)
        except OSError as exc:
            if temp_name and os.path.exists(temp_name):
                os.unlink(temp_name)
            LOGGER.error("Failed to write CSV table %s: %s", self.path, exc)
            raise PersistenceError(f"Failed to write CSV table {self.path}: {exc}") from exc

        LOGGER.debug("Wrote %d rows to %s", count, self.path)
