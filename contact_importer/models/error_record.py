from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""RowErrorRecord model for the import error log.

Each record is one JSON Lines entry with a fixed key set. row=-1 marks a
run-level error (e.g. permission denied) that is not tied to a single row.
"""

__all__ = [
    "RowErrorRecord",
]


@dataclass(frozen=True)
class RowErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Spreadsheet file name being imported
        row: 0-based row index within the import. -1 for run-level errors
        contact_name: Name of the failing contact (may be empty)
        phone: Canonical phone of the failing contact (may be empty)
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Underlying error message
    """
    timestamp: str  # ISO8601 UTC
    file: str
    row: int  # 不明な場合 -1
    contact_name: str
    phone: str
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(
        file: str,
        row: int,
        error_type: str,
        message: str,
        *,
        contact_name: str = "",
        phone: str = "",
    ) -> RowErrorRecord:
        """Create a new record with the current UTC timestamp."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return RowErrorRecord(
            timestamp=ts,
            file=file,
            row=row,
            contact_name=contact_name,
            phone=phone,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # dataclass -> dict のみ (追加キー禁止)
        return json.dumps(asdict(self), ensure_ascii=False)
