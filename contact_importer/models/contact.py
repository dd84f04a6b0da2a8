from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from ..phone.normalizer import LOOKUP_KEY_LENGTH, lookup_key

"""Contact domain models: import candidates and device contact snapshots.

ContactCandidate is produced by the row validator, annotated by the duplicate
detector and consumed read-only by the bulk importer. DeviceContact is an
immutable snapshot of a contact owned by the device contact store.
"""

__all__ = [
    "DuplicateAction",
    "ContactCandidate",
    "DeviceContact",
]


class DuplicateAction(str, Enum):
    """Per-row decision for a row colliding with an existing phone number.

    - SKIP: leave the existing contact untouched (default)
    - UPDATE: overwrite the existing device contact
    - FORCE_ADD: create a new contact regardless of the collision
    """
    SKIP = "skip"
    UPDATE = "update"
    FORCE_ADD = "force_add"


@dataclass
class ContactCandidate:
    """One spreadsheet row after column mapping and validation.

    Mutable on purpose: the host UI edits fields, toggles ``selected`` and
    overrides ``duplicate_action`` before the import runs.
    """
    id: str
    name: str
    phone: str  # canonical form from normalize_phone()
    email: str | None = None
    company: str | None = None
    notes: str | None = None
    is_valid: bool = True
    validation_errors: list[str] = field(default_factory=list)
    is_duplicate: bool = False
    duplicate_action: DuplicateAction = DuplicateAction.SKIP
    existing_contact_id: str | None = None
    selected: bool = True


@dataclass(frozen=True)
class DeviceContact:
    """Read-only snapshot of a contact stored on the device."""
    id: str
    name: str
    phones: tuple[str, ...] = ()
    lookup_keys: tuple[str, ...] = ()  # phones -> lookup_key() 済み
    emails: tuple[str, ...] = ()
    company: str | None = None

    @staticmethod
    def create(
        id: str,
        name: str,
        phones: Iterable[str] = (),
        emails: Iterable[str] = (),
        company: str | None = None,
        *,
        key_length: int = LOOKUP_KEY_LENGTH,
    ) -> DeviceContact:
        """Build a snapshot, dropping blank values and computing lookup keys."""
        phone_list = tuple(p for p in phones if p)
        keys = tuple(k for k in (lookup_key(p, key_length=key_length) for p in phone_list) if k)
        return DeviceContact(
            id=id,
            name=name.strip() or "Unknown",
            phones=phone_list,
            lookup_keys=keys,
            emails=tuple(e for e in emails if e),
            company=company or None,
        )
