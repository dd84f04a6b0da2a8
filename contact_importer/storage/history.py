from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from ..models.config_models import HISTORY_LIMIT
from ..models.contact import DeviceContact
from ..models.import_record import ImportRecord
from ..phone.normalizer import LOOKUP_KEY_LENGTH
from ..services.bulk_import import ContactPayload, PermissionStatus

"""JSON file persistence: import history and a file-backed contact store.

History file: JSON array of ImportRecord dicts, most recent first.

Contact store file:
    {"permission": true, "next_id": 3,
     "contacts": [{"id": "c1", "name": ..., "phones": [...], "emails": [...],
                   "company": ..., "note": ...}]}
"""

__all__ = [
    "StorageError",
    "JsonHistoryStore",
    "JsonContactStore",
]

logger = logging.getLogger(__name__)


class StorageError(Exception):
    pass


class JsonHistoryStore:
    """Import history kept as a capped, most-recent-first JSON array."""

    def __init__(self, path: Path, limit: int = HISTORY_LIMIT) -> None:
        self.path = path
        self.limit = limit

    def load(self) -> list[ImportRecord]:
        """Missing or unreadable files load as an empty history."""
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"history: cannot read {self.path}, starting empty: {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"history: {self.path} is not a JSON array, starting empty")
            return []

        records: list[ImportRecord] = []
        for item in data:
            try:
                records.append(ImportRecord.from_dict(item))
            except (KeyError, TypeError) as e:
                logger.warning(f"history: dropping malformed record: {e}")
        return records

    def _save(self, records: list[ImportRecord]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps([r.to_dict() for r in records], ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            raise StorageError(f"Failed to save import history: {e}") from e

    def append(self, record: ImportRecord) -> list[ImportRecord]:
        records = [record, *self.load()][: self.limit]
        self._save(records)
        return records

    def remove(self, record_id: str) -> bool:
        records = self.load()
        kept = [r for r in records if r.id != record_id]
        if len(kept) == len(records):
            return False
        self._save(kept)
        return True

    def mark_undone(self, record_id: str) -> bool:
        """Clear can_undo on a record (after its contacts were removed)."""
        records = self.load()
        found = False
        updated: list[ImportRecord] = []
        for r in records:
            if r.id == record_id:
                found = True
                r = ImportRecord.from_dict({**r.to_dict(), "canUndo": False})
            updated.append(r)
        if found:
            self._save(updated)
        return found


class JsonContactStore:
    """ContactStore backed by a JSON file. Every write is saved immediately."""

    def __init__(self, path: Path, *, key_length: int = LOOKUP_KEY_LENGTH) -> None:
        self.path = path
        self.key_length = key_length
        self._data = self._read()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"permission": True, "next_id": 1, "contacts": []}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read contact store {self.path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("contacts", []), list):
            raise StorageError(f"Contact store {self.path} has an unexpected layout")
        data.setdefault("permission", True)
        data.setdefault("contacts", [])
        data.setdefault("next_id", len(data["contacts"]) + 1)
        return data

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8"
        )

    def _find(self, contact_id: str) -> dict[str, Any]:
        for entry in self._data["contacts"]:
            if entry["id"] == contact_id:
                return entry
        raise KeyError(f"Contact not found: {contact_id}")

    @staticmethod
    def _entry(contact_id: str, payload: ContactPayload) -> dict[str, Any]:
        return {
            "id": contact_id,
            "name": payload.display_name,
            "phones": [payload.phone] if payload.phone else [],
            "emails": [payload.email] if payload.email else [],
            "company": payload.company,
            "note": payload.note,
        }

    # ContactStore

    def check_permission(self) -> PermissionStatus:
        return PermissionStatus(granted=bool(self._data["permission"]))

    def request_permission(self) -> PermissionStatus:
        return self.check_permission()

    def list_contacts(self) -> list[DeviceContact]:
        return [
            DeviceContact.create(
                str(e["id"]),
                e.get("name") or "",
                e.get("phones") or (),
                e.get("emails") or (),
                e.get("company"),
                key_length=self.key_length,
            )
            for e in self._data["contacts"]
        ]

    def add_contact(self, payload: ContactPayload) -> str:
        contact_id = f"c{self._data['next_id']}"
        self._data["next_id"] += 1
        self._data["contacts"].append(self._entry(contact_id, payload))
        self._write()
        return contact_id

    def update_contact(self, contact_id: str, payload: ContactPayload) -> None:
        entry = self._find(contact_id)
        entry.update(self._entry(contact_id, payload))
        self._write()

    def remove_contact(self, contact_id: str) -> None:
        entry = self._find(contact_id)
        self._data["contacts"].remove(entry)
        self._write()
