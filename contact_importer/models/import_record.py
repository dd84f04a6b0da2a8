from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

"""ImportRecord model: persisted summary of one completed import.

The history collaborator stores a JSON array of these records (most recent
first). Keys on disk keep the camelCase layout of the existing history file:

    {"id", "fileName", "date", "totalRows", "imported", "skipped",
     "updated", "failed", "contactIds", "canUndo"}
"""

__all__ = [
    "ImportRecord",
]

_JSON_KEYS = {
    "id": "id",
    "file_name": "fileName",
    "date": "date",
    "total_rows": "totalRows",
    "imported": "imported",
    "skipped": "skipped",
    "updated": "updated",
    "failed": "failed",
    "contact_ids": "contactIds",
    "can_undo": "canUndo",
}


@dataclass(frozen=True)
class ImportRecord:
    """Summary of an import run.

    Attributes:
        id: Unique record id
        file_name: Name of the imported spreadsheet
        date: ISO8601 UTC timestamp with 'Z' suffix
        total_rows: Rows passed to the run
        imported: Contacts created
        skipped / updated / failed: Remaining outcome counts
        contact_ids: Device ids created by the run (used for undo)
        can_undo: True while the created contacts can still be removed
    """
    id: str
    file_name: str
    date: str
    total_rows: int
    imported: int
    skipped: int
    updated: int
    failed: int
    contact_ids: list[str] = field(default_factory=list)
    can_undo: bool = False

    @staticmethod
    def create(
        file_name: str,
        *,
        total_rows: int,
        imported: int,
        skipped: int,
        updated: int,
        failed: int,
        contact_ids: list[str],
    ) -> ImportRecord:
        """Create a record stamped with a fresh id and the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ImportRecord(
            id=f"import_{uuid.uuid4().hex}",
            file_name=file_name,
            date=ts,
            total_rows=total_rows,
            imported=imported,
            skipped=skipped,
            updated=updated,
            failed=failed,
            contact_ids=list(contact_ids),
            can_undo=len(contact_ids) > 0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            json_key: (list(getattr(self, attr)) if attr == "contact_ids" else getattr(self, attr))
            for attr, json_key in _JSON_KEYS.items()
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ImportRecord:
        """Inverse of ``to_dict``. Raises KeyError on a missing key."""
        values = {attr: data[json_key] for attr, json_key in _JSON_KEYS.items()}
        values["contact_ids"] = [str(c) for c in values["contact_ids"]]
        values["can_undo"] = bool(values["can_undo"])
        return ImportRecord(**values)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)
