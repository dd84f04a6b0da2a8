from __future__ import annotations

import pytest

from contact_importer.models.config_models import ImporterSettings
from contact_importer.models.contact import ContactCandidate, DuplicateAction
from contact_importer.models.import_progress import ImportState
from contact_importer.services.bulk_import import (
    PERMISSION_NOT_GRANTED,
    PERMISSION_REVOKED,
    BulkImporter,
    CancellationToken,
    ContactPayload,
    build_import_record,
    select_for_import,
)


def _rows(n: int, start: int = 0) -> list[ContactCandidate]:
    return [
        ContactCandidate(id=f"r{i}", name=f"Person {i}", phone=f"9{i:09d}")
        for i in range(start, start + n)
    ]


def _importer(store, **kw) -> BulkImporter:
    kw.setdefault("sleep", lambda _s: None)
    return BulkImporter(store, **kw)


def _assert_counts(p) -> None:
    assert p.processed == p.successful + p.failed + p.skipped + p.updated


def test_all_new_rows_added(fake_store):
    emitted = []
    outcome = _importer(fake_store, batch_size=2).run(_rows(5), on_progress=emitted.append)

    p = outcome.progress
    assert p.state is ImportState.COMPLETED
    assert (p.total, p.processed, p.successful) == (5, 5, 5)
    assert p.total_batches == 3
    assert p.is_running is False
    assert outcome.added_contact_ids == ["dev1", "dev2", "dev3", "dev4", "dev5"]
    # 1 emission per row + final
    assert len(emitted) == 6
    for snap in emitted:
        _assert_counts(snap)
    assert emitted[-1].state is ImportState.COMPLETED
    assert [s.processed for s in emitted[:5]] == [1, 2, 3, 4, 5]


def test_payload_gets_country_code_and_split_name(fake_store):
    rows = [ContactCandidate(id="r1", name="Asha Devi Rao", phone="9876543210",
                             email=" a@b.co ", company="", notes="n")]
    _importer(fake_store, country_code="+91").run(rows)
    _, payload = fake_store.added[0]
    assert payload == ContactPayload(
        first_name="Asha",
        last_name="Devi Rao",
        display_name="Asha Devi Rao",
        phone="+919876543210",
        email="a@b.co",
        company=None,
        note="n",
    )


def test_snapshots_are_independent(fake_store):
    emitted = []
    _importer(fake_store).run(_rows(2), on_progress=emitted.append)
    emitted[0].successful = 99
    emitted[0].errors.append("x")
    assert emitted[1].successful == 2
    assert emitted[1].errors == []


def test_permission_denied_before_start(store_factory):
    store = store_factory(granted=False)
    emitted = []
    outcome = _importer(store).run(_rows(3), on_progress=emitted.append)

    p = outcome.progress
    assert p.state is ImportState.PERMISSION_DENIED
    assert p.failed == 3
    assert p.processed == 3
    assert len(p.errors) == 1
    assert p.errors[0].row_index == -1
    assert p.errors[0].message == PERMISSION_NOT_GRANTED
    assert store.added == []
    assert len(emitted) == 1
    _assert_counts(p)


def test_permission_check_raising_counts_as_denied(store_factory):
    store = store_factory()

    def boom():
        raise RuntimeError("bridge down")

    store.check_permission = boom
    outcome = _importer(store).run(_rows(1))
    assert outcome.state is ImportState.PERMISSION_DENIED


def test_permission_revoked_mid_run_keeps_prior_writes(store_factory):
    # 1 回目 (事前チェック) は許可、2 回目 (batch index 5) で取り消し
    store = store_factory(permission_sequence=[True, False])
    outcome = _importer(store, batch_size=1).run(_rows(8))

    p = outcome.progress
    assert p.state is ImportState.PERMISSION_DENIED
    assert p.successful == 5
    assert p.processed == 5
    assert len(store.added) == 5
    assert p.errors[-1].row_index == 5
    assert p.errors[-1].message == PERMISSION_REVOKED
    _assert_counts(p)


def test_permission_rechecked_every_five_batches(fake_store):
    _importer(fake_store, batch_size=1).run(_rows(11))
    # 事前 1 回 + batch index 5, 10
    assert fake_store.permission_checks == 3


def test_cancel_before_run_writes_nothing(fake_store):
    token = CancellationToken()
    token.cancel()
    outcome = _importer(fake_store).run(_rows(3), cancel_token=token)
    assert outcome.state is ImportState.CANCELLED
    assert outcome.progress.is_cancelled
    assert outcome.progress.processed == 0
    assert fake_store.added == []


def test_cancel_mid_run_keeps_partial_work(fake_store):
    token = CancellationToken()
    emitted = []

    def on_progress(snap):
        emitted.append(snap)
        if snap.processed == 2:
            token.cancel()

    outcome = _importer(fake_store, batch_size=10).run(
        _rows(5), on_progress=on_progress, cancel_token=token
    )
    p = outcome.progress
    assert p.state is ImportState.CANCELLED
    assert p.processed == 2
    assert p.processed < p.total
    assert len(fake_store.added) == 2
    assert emitted[-1].state is ImportState.CANCELLED
    _assert_counts(p)


def test_retry_then_success(store_factory):
    store = store_factory(fail_adds={"Person 0": 2})
    sleeps = []
    outcome = BulkImporter(store, sleep=sleeps.append, batch_delay=0).run(_rows(1))
    assert outcome.progress.successful == 1
    assert outcome.progress.failed == 0
    assert sleeps == [0.2, 0.2]


def test_write_failure_after_retries_is_recorded_not_raised(store_factory):
    store = store_factory(fail_adds={"Person 1": 100})
    outcome = _importer(store).run(_rows(3))
    p = outcome.progress
    assert p.state is ImportState.COMPLETED
    assert (p.successful, p.failed) == (2, 1)
    err = p.errors[0]
    assert err.row_index == 1
    assert err.contact_name == "Person 1"
    assert "device rejected" in err.message
    assert err.kind == "DEVICE_WRITE_ERROR"
    _assert_counts(p)


def test_revalidation_failure_is_failed_not_written(fake_store):
    rows = [ContactCandidate(id="r1", name="A", phone="123")]
    outcome = _importer(fake_store).run(rows)
    p = outcome.progress
    assert p.failed == 1
    assert p.errors[0].kind == "VALIDATION_ERROR"
    assert fake_store.added == []


def test_invalid_row_is_skipped(fake_store):
    rows = [ContactCandidate(id="r1", name="", phone="1", is_valid=False)]
    outcome = _importer(fake_store).run(rows)
    assert outcome.progress.skipped == 1
    assert fake_store.added == []


def test_duplicate_actions(fake_store):
    rows = [
        ContactCandidate(id="r1", name="Skip", phone="9000000001", is_duplicate=True,
                         duplicate_action=DuplicateAction.SKIP, existing_contact_id="d1"),
        ContactCandidate(id="r2", name="Upd", phone="9000000002", is_duplicate=True,
                         duplicate_action=DuplicateAction.UPDATE, existing_contact_id="d2"),
        ContactCandidate(id="r3", name="Force", phone="9000000003", is_duplicate=True,
                         duplicate_action=DuplicateAction.FORCE_ADD, existing_contact_id="d3"),
        ContactCandidate(id="r4", name="UpdNoId", phone="9000000004", is_duplicate=True,
                         duplicate_action=DuplicateAction.UPDATE),
    ]
    outcome = _importer(fake_store).run(rows)
    p = outcome.progress
    assert (p.skipped, p.updated, p.successful) == (2, 1, 1)
    assert [cid for cid, _ in fake_store.updated] == ["d2"]
    assert [pl.display_name for _, pl in fake_store.added] == ["Force"]
    _assert_counts(p)


def test_unknown_duplicate_action_fails_row(fake_store):
    rows = [ContactCandidate(id="r1", name="A", phone="9000000001", is_duplicate=True,
                             duplicate_action="merge", existing_contact_id="d1")]
    outcome = _importer(fake_store).run(rows)
    assert outcome.progress.failed == 1
    assert "merge" in outcome.progress.errors[0].message


def test_same_number_twice_in_session_added_once(fake_store):
    rows = [
        ContactCandidate(id="r1", name="A", phone="+919876543210"),
        ContactCandidate(id="r2", name="B", phone="9876543210"),
    ]
    outcome = _importer(fake_store).run(rows)
    assert outcome.progress.successful == 1
    assert outcome.progress.skipped == 1
    assert len(fake_store.added) == 1


def test_force_add_suppresses_later_row_with_same_number(fake_store):
    rows = [
        ContactCandidate(id="r1", name="Force", phone="9000000003", is_duplicate=True,
                         duplicate_action=DuplicateAction.FORCE_ADD, existing_contact_id="d3"),
        ContactCandidate(id="r2", name="Again", phone="+919000000003"),
    ]
    outcome = _importer(fake_store).run(rows)
    p = outcome.progress
    assert p.successful == 1
    assert p.skipped == 1
    assert [pl.display_name for _, pl in fake_store.added] == ["Force"]
    _assert_counts(p)


def test_batch_delay_between_batches_only(fake_store):
    sleeps = []
    BulkImporter(fake_store, batch_size=2, batch_delay=0.08, sleep=sleeps.append).run(_rows(5))
    assert sleeps == [0.08, 0.08]


def test_empty_run_completes(fake_store):
    emitted = []
    outcome = _importer(fake_store).run([], on_progress=emitted.append)
    assert outcome.state is ImportState.COMPLETED
    assert outcome.progress.total_batches == 0
    assert len(emitted) == 1


def test_invalid_batch_size_rejected(fake_store):
    with pytest.raises(ValueError):
        BulkImporter(fake_store, batch_size=0)


def test_from_settings(fake_store):
    settings = ImporterSettings(batch_size=7, default_country_code="+1")
    importer = BulkImporter.from_settings(fake_store, settings, sleep=lambda _s: None)
    assert importer.batch_size == 7
    assert importer.country_code == "+1"


def test_undo_removes_with_one_retry(store_factory):
    store = store_factory(fail_removes={"dev2"})
    result = _importer(store).undo(["dev1", "dev2", "dev3"])
    assert (result.removed, result.failed) == (2, 1)
    assert store.removed == ["dev1", "dev3"]


def test_select_for_import():
    rows = [
        ContactCandidate(id="a", name="A", phone="9000000001"),
        ContactCandidate(id="b", name="B", phone="9000000002", selected=False),
        ContactCandidate(id="c", name="", phone="1", is_valid=False),
    ]
    assert [r.id for r in select_for_import(rows)] == ["a"]


def test_build_import_record(fake_store):
    outcome = _importer(fake_store).run(_rows(2))
    record = build_import_record("contacts.xlsx", outcome)
    assert record.file_name == "contacts.xlsx"
    assert record.total_rows == 2
    assert record.imported == 2
    assert record.contact_ids == ["dev1", "dev2"]
    assert record.can_undo is True
    assert record.id.startswith("import_")
    assert record.date.endswith("Z")
