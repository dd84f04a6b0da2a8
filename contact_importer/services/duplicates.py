from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace

from ..models.contact import ContactCandidate, DeviceContact, DuplicateAction
from ..phone.normalizer import LOOKUP_KEY_LENGTH, lookup_key

"""Duplicate detection against device contacts and within the import batch.

Known imprecision: when two device contacts share a lookup key, the first one
encountered owns the key in the index and any collision points at it.
"""

__all__ = [
    "DuplicateCheckResult",
    "build_lookup_index",
    "check_duplicates",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DuplicateCheckResult:
    new_contacts: list[ContactCandidate] = field(default_factory=list)
    duplicates: list[ContactCandidate] = field(default_factory=list)
    total_existing: int = 0  # 診断用 (分類には使わない)


def build_lookup_index(contacts: Iterable[DeviceContact]) -> dict[str, DeviceContact]:
    """Lookup key -> device contact. First contact seen for a key wins."""
    index: dict[str, DeviceContact] = {}
    for contact in contacts:
        for key in contact.lookup_keys:
            if key and key not in index:
                index[key] = contact
    return index


def check_duplicates(
    candidates: Iterable[ContactCandidate],
    contacts: Sequence[DeviceContact],
    default_action: DuplicateAction = DuplicateAction.SKIP,
    *,
    key_length: int = LOOKUP_KEY_LENGTH,
) -> DuplicateCheckResult:
    """Partition valid candidates into new contacts and duplicates.

    - invalid rows are left out of both lists
    - a key already seen earlier in ``candidates`` -> duplicate (batch), still
      pointing at the device contact when one matches
    - a key matching a device contact -> duplicate with existing_contact_id
    - otherwise -> new

    Input candidates are not mutated; annotated copies are returned.
    """
    index = build_lookup_index(contacts)
    new_contacts: list[ContactCandidate] = []
    duplicates: list[ContactCandidate] = []
    seen_in_batch: set[str] = set()

    for row in candidates:
        if not row.is_valid:
            continue
        key = lookup_key(row.phone, key_length=key_length)
        existing = index.get(key)

        if key in seen_in_batch:
            duplicates.append(
                replace(
                    row,
                    is_duplicate=True,
                    duplicate_action=default_action,
                    existing_contact_id=existing.id if existing else None,
                )
            )
            continue
        seen_in_batch.add(key)

        if existing is not None:
            duplicates.append(
                replace(
                    row,
                    is_duplicate=True,
                    duplicate_action=default_action,
                    existing_contact_id=existing.id,
                )
            )
        else:
            new_contacts.append(
                replace(
                    row,
                    is_duplicate=False,
                    duplicate_action=default_action,
                    existing_contact_id=None,
                )
            )

    logger.debug(
        f"duplicate check: new={len(new_contacts)} duplicates={len(duplicates)} "
        f"existing={len(contacts)}"
    )
    return DuplicateCheckResult(
        new_contacts=new_contacts,
        duplicates=duplicates,
        total_existing=len(contacts),
    )
