from __future__ import annotations

import dataclasses

import pytest

from contact_importer.models import (
    ContactCandidate,
    DeviceContact,
    DuplicateAction,
    ImportProgress,
    ImportState,
    RowError,
)


def test_device_contact_create_drops_blanks_and_computes_keys():
    c = DeviceContact.create("d1", "  ", ["", "+91 98765 43210", "04423456789"], ["", "a@b.co"])
    assert c.name == "Unknown"
    assert c.phones == ("+91 98765 43210", "04423456789")
    assert c.lookup_keys == ("9876543210", "4423456789")
    assert c.emails == ("a@b.co",)
    assert c.company is None


def test_device_contact_is_frozen():
    c = DeviceContact.create("d1", "A")
    with pytest.raises(dataclasses.FrozenInstanceError):
        c.name = "B"  # type: ignore[misc]


def test_candidate_defaults():
    c = ContactCandidate(id="r1", name="A", phone="9876543210")
    assert c.is_valid and c.selected
    assert not c.is_duplicate
    assert c.duplicate_action is DuplicateAction.SKIP
    assert c.validation_errors == []


def test_duplicate_action_values():
    assert [a.value for a in DuplicateAction] == ["skip", "update", "force_add"]
    assert DuplicateAction("force_add") is DuplicateAction.FORCE_ADD


def test_progress_accounted_and_finished():
    p = ImportProgress(total=4, processed=4, successful=1, failed=1, skipped=1, updated=1)
    assert p.accounted == p.processed
    assert not p.is_finished
    p.state = ImportState.CANCELLED
    assert p.is_finished


def test_progress_snapshot_copies_errors():
    p = ImportProgress(total=1)
    snap = p.snapshot()
    p.errors.append(RowError(0, "A", "1", "boom"))
    p.processed = 1
    assert snap.errors == []
    assert snap.processed == 0
