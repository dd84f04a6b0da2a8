from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import RowErrorRecord
from ..models.import_progress import RowError

"""Import error log buffering.

- JSON Lines with a fixed schema (no extra keys)
- One ``import-errors-YYYYMMDD-HHMMSS.log`` (UTC) per buffer, created lazily
- Records are buffered and written in one go on flush()
"""

__all__ = [
    "RowErrorRecord",
    "ErrorLogBuffer",
    "classify_row_error",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


def classify_row_error(error: RowError) -> str:
    """UPPER_SNAKE error type for a progress RowError."""
    if error.row_index < 0 and error.kind == "DEVICE_WRITE_ERROR":
        return "RUN_ERROR"
    return error.kind


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush writes JSON Lines.

    Not thread safe (single writer, serial execution).
    """
    def __init__(self, logs_dir: Path | None = None) -> None:
        self._logs_dir = logs_dir if logs_dir is not None else LOGS_DIR
        self._records: list[RowErrorRecord] = []
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"import-errors-{stamp}.log"
        return self._file_path

    def append(self, record: RowErrorRecord) -> None:
        self._records.append(record)

    def extend_from_progress(self, file_name: str, errors: Iterable[RowError]) -> None:
        for err in errors:
            self.append(
                RowErrorRecord.create(
                    file=file_name,
                    row=err.row_index,
                    error_type=classify_row_error(err),
                    message=err.message,
                    contact_name=err.contact_name,
                    phone=err.phone,
                )
            )

    def __len__(self) -> int:
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered records to the log file; None when nothing was buffered."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
