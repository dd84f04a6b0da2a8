from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum

"""Import progress model for the bulk importer.

Single writer (the importer owns the record during a run); observers only
ever receive ``snapshot()`` copies.

State transitions: not_started -> running -> (completed | cancelled | permission_denied)
"""

__all__ = [
    "ImportState",
    "RowError",
    "ImportProgress",
]


class ImportState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PERMISSION_DENIED = "permission_denied"


@dataclass(frozen=True)
class RowError:
    """Failure detail for a single row. row_index=-1 for run-level errors."""
    row_index: int
    contact_name: str
    phone: str
    message: str
    kind: str = "DEVICE_WRITE_ERROR"  # | VALIDATION_ERROR | PERMISSION_DENIED


@dataclass
class ImportProgress:
    total: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    updated: int = 0
    is_running: bool = False
    is_cancelled: bool = False
    current_batch: int = 0
    total_batches: int = 0
    errors: list[RowError] = field(default_factory=list)
    state: ImportState = ImportState.NOT_STARTED

    @property
    def accounted(self) -> int:
        """successful + failed + skipped + updated (always == processed)."""
        return self.successful + self.failed + self.skipped + self.updated

    @property
    def is_finished(self) -> bool:
        return self.state in (
            ImportState.COMPLETED,
            ImportState.CANCELLED,
            ImportState.PERMISSION_DENIED,
        )

    def snapshot(self) -> ImportProgress:
        """Independent copy safe to hand to an observer."""
        snap = copy.copy(self)
        snap.errors = list(self.errors)
        return snap
