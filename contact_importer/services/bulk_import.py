from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from ..models.config_models import ImporterSettings
from ..models.contact import ContactCandidate, DeviceContact, DuplicateAction
from ..models.import_progress import ImportProgress, ImportState, RowError
from ..models.import_record import ImportRecord
from ..phone.normalizer import (
    LOOKUP_KEY_LENGTH,
    PHONE_MAX_DIGITS,
    PHONE_MIN_DIGITS,
    apply_country_code,
    lookup_key,
    validate_phone,
)

"""Bulk import of contact candidates into the device contact store.

Run state machine: not_started -> running -> (completed | cancelled | permission_denied)

- Permission is checked before any write (fatal, nothing attempted) and
  re-checked every ``permission_check_every`` batches (fatal, prior writes kept).
- Rows are processed in fixed-size batches with a short pause in between.
- Cancellation is cooperative: the token is polled before every row and
  every batch. Contacts already written stay written; undo is a separate call.
- Device write failures are retried, then recorded on the row; they never
  abort the run.
- One progress snapshot is emitted per processed row plus one per state
  change. ``processed == successful + failed + skipped + updated`` holds in
  every snapshot.
"""

__all__ = [
    "MAX_RETRIES",
    "RETRY_DELAY_SECONDS",
    "BATCH_DELAY_SECONDS",
    "PERMISSION_CHECK_EVERY",
    "PermissionStatus",
    "ContactPayload",
    "ContactStore",
    "CancellationToken",
    "DeviceWriteError",
    "ImportOutcome",
    "UndoResult",
    "BulkImporter",
    "select_for_import",
    "build_import_record",
]

logger = logging.getLogger(__name__)

MAX_RETRIES = 2
RETRY_DELAY_SECONDS = 0.2
BATCH_DELAY_SECONDS = 0.08
PERMISSION_CHECK_EVERY = 5
UNDO_RETRY_DELAY_SECONDS = 0.1

PERMISSION_NOT_GRANTED = "Contacts permission not granted. Please enable it in Settings."
PERMISSION_REVOKED = "Contacts permission was revoked during import."

ProgressCallback = Callable[[ImportProgress], None]


@dataclass(frozen=True)
class PermissionStatus:
    granted: bool
    can_ask_again: bool = True


@dataclass(frozen=True)
class ContactPayload:
    """What gets written to the device for one candidate."""
    first_name: str
    last_name: str
    display_name: str
    phone: str  # country code applied
    email: str | None = None
    company: str | None = None
    note: str | None = None

    @staticmethod
    def from_candidate(row: ContactCandidate, country_code: str) -> ContactPayload:
        parts = (row.name or "").split()
        first = parts[0] if parts else "Unknown"
        last = " ".join(parts[1:])
        return ContactPayload(
            first_name=first,
            last_name=last,
            display_name=(row.name or "").strip() or first,
            phone=apply_country_code(row.phone, country_code),
            email=(row.email or "").strip() or None,
            company=(row.company or "").strip() or None,
            note=(row.notes or "").strip() or None,
        )


class ContactStore(Protocol):
    """Device contact store collaborator."""

    def check_permission(self) -> PermissionStatus: ...

    def request_permission(self) -> PermissionStatus: ...

    def list_contacts(self) -> list[DeviceContact]: ...

    def add_contact(self, payload: ContactPayload) -> str: ...

    def update_contact(self, contact_id: str, payload: ContactPayload) -> None: ...

    def remove_contact(self, contact_id: str) -> None: ...


class CancellationToken:
    """Cooperative cancel signal shared by the caller and one running import."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class DeviceWriteError(Exception):
    pass


@dataclass(frozen=True)
class ImportOutcome:
    progress: ImportProgress
    added_contact_ids: list[str]

    @property
    def state(self) -> ImportState:
        return self.progress.state


@dataclass(frozen=True)
class UndoResult:
    removed: int
    failed: int


def select_for_import(candidates: Iterable[ContactCandidate]) -> list[ContactCandidate]:
    """Rows the user kept selected and that passed validation."""
    return [c for c in candidates if c.selected and c.is_valid]


class BulkImporter:
    """Batched, retrying, cancellable writer of ContactCandidates.

    ``sleep`` is injectable; pass ``lambda _: None`` (or zero delays) when
    no host UI needs to breathe between batches.
    """

    def __init__(
        self,
        store: ContactStore,
        *,
        country_code: str = "+91",
        batch_size: int = 100,
        key_length: int = LOOKUP_KEY_LENGTH,
        min_digits: int = PHONE_MIN_DIGITS,
        max_digits: int = PHONE_MAX_DIGITS,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY_SECONDS,
        batch_delay: float = BATCH_DELAY_SECONDS,
        permission_check_every: int = PERMISSION_CHECK_EVERY,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1 (got {batch_size})")
        self.store = store
        self.country_code = country_code
        self.batch_size = batch_size
        self.key_length = key_length
        self.min_digits = min_digits
        self.max_digits = max_digits
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.batch_delay = batch_delay
        self.permission_check_every = permission_check_every
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, store: ContactStore, settings: ImporterSettings, **kwargs: Any
    ) -> BulkImporter:
        return cls(
            store,
            country_code=settings.default_country_code,
            batch_size=settings.batch_size,
            key_length=settings.lookup_key_length,
            min_digits=settings.phone_min_digits,
            max_digits=settings.phone_max_digits,
            **kwargs,
        )

    # ------------------------------------------------------------------ run

    def run(
        self,
        rows: Sequence[ContactCandidate],
        *,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ImportOutcome:
        """Import ``rows`` and return the final progress plus created ids."""
        rows = list(rows)
        token = cancel_token if cancel_token is not None else CancellationToken()
        total_batches = math.ceil(len(rows) / self.batch_size)
        progress = ImportProgress(total=len(rows), total_batches=total_batches)
        added_ids: list[str] = []

        def emit() -> None:
            if on_progress is not None:
                on_progress(progress.snapshot())

        if not self._permission_granted():
            # 事前チェック失敗: 1 行も書き込まない
            progress.state = ImportState.PERMISSION_DENIED
            progress.errors.append(
                RowError(-1, "", "", PERMISSION_NOT_GRANTED, kind="PERMISSION_DENIED")
            )
            progress.failed = len(rows)
            progress.processed = len(rows)
            emit()
            logger.error("import aborted: contacts permission not granted")
            return ImportOutcome(progress, added_ids)

        progress.state = ImportState.RUNNING
        progress.is_running = True
        logger.info(f"import started: rows={len(rows)} batches={total_batches}")

        session_keys: set[str] = set()
        for batch_index in range(total_batches):
            if token.cancelled:
                return self._stop_cancelled(progress, added_ids, emit)

            start = batch_index * self.batch_size
            batch = rows[start:start + self.batch_size]
            progress.current_batch = batch_index + 1

            if batch_index > 0 and batch_index % self.permission_check_every == 0:
                if not self._permission_granted():
                    progress.errors.append(
                        RowError(start, "", "", PERMISSION_REVOKED, kind="PERMISSION_DENIED")
                    )
                    progress.state = ImportState.PERMISSION_DENIED
                    progress.is_running = False
                    emit()
                    logger.error(f"import stopped: permission revoked at row {start}")
                    return ImportOutcome(progress, added_ids)

            for offset, row in enumerate(batch):
                if token.cancelled:
                    return self._stop_cancelled(progress, added_ids, emit)
                self._process_row(row, start + offset, progress, added_ids, session_keys)
                progress.processed += 1
                emit()

            if batch_index < total_batches - 1 and self.batch_delay > 0:
                self._sleep(self.batch_delay)

        progress.state = ImportState.COMPLETED
        progress.is_running = False
        emit()
        logger.info(
            f"import completed: successful={progress.successful} updated={progress.updated} "
            f"skipped={progress.skipped} failed={progress.failed}"
        )
        return ImportOutcome(progress, added_ids)

    def _stop_cancelled(
        self,
        progress: ImportProgress,
        added_ids: list[str],
        emit: Callable[[], None],
    ) -> ImportOutcome:
        progress.state = ImportState.CANCELLED
        progress.is_cancelled = True
        progress.is_running = False
        emit()
        logger.info(f"import cancelled after {progress.processed}/{progress.total} rows")
        return ImportOutcome(progress, added_ids)

    def _process_row(
        self,
        row: ContactCandidate,
        row_index: int,
        progress: ImportProgress,
        added_ids: list[str],
        session_keys: set[str],
    ) -> None:
        """Apply the per-row policy and bump exactly one outcome counter."""
        if not row.is_valid:
            progress.skipped += 1
            return

        problem = self._revalidate(row)
        if problem is not None:
            self._record_failure(progress, row, row_index, problem, kind="VALIDATION_ERROR")
            return

        key = lookup_key(row.phone, key_length=self.key_length)
        try:
            if row.is_duplicate:
                try:
                    action = DuplicateAction(row.duplicate_action)
                except ValueError:
                    self._record_failure(
                        progress, row, row_index,
                        f"Unknown duplicate action: {row.duplicate_action!r}",
                        kind="VALIDATION_ERROR",
                    )
                    return
                if action is DuplicateAction.SKIP:
                    progress.skipped += 1
                elif action is DuplicateAction.UPDATE:
                    if row.existing_contact_id:
                        self._update(row.existing_contact_id, row)
                        progress.updated += 1
                    else:
                        progress.skipped += 1
                else:
                    added_ids.append(self._add(row))
                    session_keys.add(key)
                    progress.successful += 1
            elif key in session_keys:
                # 同一セッション内の重複番号
                progress.skipped += 1
            else:
                added_ids.append(self._add(row))
                session_keys.add(key)
                progress.successful += 1
        except DeviceWriteError as e:
            self._record_failure(progress, row, row_index, str(e))

    def _revalidate(self, row: ContactCandidate) -> str | None:
        if not row.name or not row.name.strip():
            return "Contact name is empty"
        if not row.phone:
            return "Phone number is empty"
        check = validate_phone(row.phone, min_digits=self.min_digits, max_digits=self.max_digits)
        if not check.valid:
            return check.reason or "Invalid phone number"
        return None

    @staticmethod
    def _record_failure(
        progress: ImportProgress,
        row: ContactCandidate,
        row_index: int,
        message: str,
        *,
        kind: str = "DEVICE_WRITE_ERROR",
    ) -> None:
        progress.failed += 1
        progress.errors.append(
            RowError(
                row_index=row_index,
                contact_name=row.name or "Unknown",
                phone=row.phone or "",
                message=message,
                kind=kind,
            )
        )
        logger.warning(f"row {row_index} failed: {message}")

    # --------------------------------------------------------- device writes

    def _with_retry(self, operation: Callable[..., Any], *args: Any) -> Any:
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                return operation(*args)
            except Exception as e:  # 外部ストアの例外型は不定
                last_error = e
                logger.debug(f"device write attempt {attempt + 1} failed: {e}")
                if attempt < self.max_retries:
                    self._sleep(self.retry_delay)
        message = str(last_error) or type(last_error).__name__
        raise DeviceWriteError(message) from last_error

    def _add(self, row: ContactCandidate) -> str:
        payload = ContactPayload.from_candidate(row, self.country_code)
        return str(self._with_retry(self.store.add_contact, payload))

    def _update(self, contact_id: str, row: ContactCandidate) -> None:
        payload = ContactPayload.from_candidate(row, self.country_code)
        self._with_retry(self.store.update_contact, contact_id, payload)

    def _permission_granted(self) -> bool:
        try:
            return bool(self.store.check_permission().granted)
        except Exception as e:
            logger.warning(f"permission check failed: {e}")
            return False

    # ----------------------------------------------------------------- undo

    def undo(self, contact_ids: Iterable[str]) -> UndoResult:
        """Remove contacts created by a previous run (one retry per id)."""
        removed = 0
        failed = 0
        for contact_id in contact_ids:
            for attempt in range(2):
                try:
                    self.store.remove_contact(contact_id)
                    removed += 1
                    break
                except Exception as e:
                    if attempt == 1:
                        failed += 1
                        logger.warning(f"undo: failed to remove {contact_id}: {e}")
                    else:
                        self._sleep(UNDO_RETRY_DELAY_SECONDS)
        logger.info(f"undo finished: removed={removed} failed={failed}")
        return UndoResult(removed=removed, failed=failed)


def build_import_record(file_name: str, outcome: ImportOutcome) -> ImportRecord:
    """Summarize a finished run into a persistable ImportRecord."""
    p = outcome.progress
    return ImportRecord.create(
        file_name or "Unknown",
        total_rows=p.total,
        imported=p.successful,
        skipped=p.skipped,
        updated=p.updated,
        failed=p.failed,
        contact_ids=outcome.added_contact_ids,
    )
