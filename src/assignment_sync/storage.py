"""Row-oriented sheet storage on CSV files.

One file per source (header row + one row per AssignmentRecord) plus an
append-only log sheet. Writes replace the whole data region atomically.
"""

import csv
import os
import tempfile
from datetime import datetime
from pathlib import Path

from src.assignment_sync.logging import get_logger
from src.assignment_sync.models import HEADER, AssignmentRecord, Source

log = get_logger(__name__)

SHEET_NAMES: dict[Source, str] = {
    Source.WEBCLASS: "webclass_assignments",
    Source.CLASSROOM: "classroom_assignments",
}
LOG_SHEET = "log"
LOG_HEADER = ["Timestamp", "Message"]


class SheetStore:
    """CSV-backed sheets under a data directory."""

    def __init__(self, data_dir: str | Path = "data") -> None:
        self.data_dir = Path(data_dir)

    def path(self, name: str) -> Path:
        return self.data_dir / f"{name}.csv"

    def read_rows(self, name: str) -> list[list[str]]:
        """Data rows of a sheet (header excluded); [] if the sheet does not exist."""
        path = self.path(name)
        if not path.exists():
            return []
        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        return [row for row in rows[1:] if any(cell.strip() for cell in row)]

    def write_rows(self, name: str, rows: list[list[str]], header: list[str] = HEADER) -> bool:
        """Overwrite a sheet's data rows, keeping the header.

        Returns:
            False when the stored rows already equal rows (nothing written).
        """
        path = self.path(name)
        if path.exists() and self.read_rows(name) == rows:
            log.debug("sheet_unchanged", sheet=name)
            return False

        self.data_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                writer.writerow(header)
                writer.writerows(rows)
            os.replace(tmp_path, path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        log.info("sheet_written", sheet=name, rows=len(rows))
        return True

    def read_records(self, source: Source) -> list[AssignmentRecord]:
        """Stored records of one source. Rows that no longer parse are dropped."""
        name = SHEET_NAMES[source]
        records = []
        for i, row in enumerate(self.read_rows(name), start=1):
            try:
                records.append(AssignmentRecord.from_row(row))
            except ValueError as e:
                log.warning("row_skipped", sheet=name, index=i, error=str(e))
        return records

    def write_records(self, source: Source, records: list[AssignmentRecord]) -> bool:
        return self.write_rows(SHEET_NAMES[source], [r.to_row() for r in records])

    def append_log(self, timestamp: datetime, message: str) -> None:
        path = self.path(LOG_SHEET)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        new_file = not path.exists()
        with open(path, "a", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            if new_file:
                writer.writerow(LOG_HEADER)
            writer.writerow([timestamp.isoformat(), message])
