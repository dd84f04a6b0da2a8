from __future__ import annotations

import errno
import io
import logging
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from numbers import Real
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.contact import DeviceContact
from ..phone.normalizer import LOOKUP_KEY_LENGTH, number_to_digits

"""Contact export / backup to VCF, CSV and XLSX.

A phone number must never be reinterpreted as a number by the application
opening the file (spreadsheets turn 919876543210 into 9.19877E+11):

- every phone passes through safe_phone() (numbers and scientific-notation
  strings become plain digit strings)
- CSV writes the phone as the ="..." text literal
- XLSX types phone cells as strings with the "@" (text) number format
"""

__all__ = [
    "EXPORT_PROGRESS_INTERVAL",
    "ExportFormat",
    "ExportPhase",
    "ExportProgress",
    "ExportError",
    "InsufficientStorageError",
    "StoragePermissionError",
    "BackupRecord",
    "ExportResult",
    "safe_phone",
    "safe_join_phones",
    "contact_to_vcard",
    "encode_vcf",
    "encode_csv",
    "encode_xlsx",
    "merge_duplicates",
    "export_contacts",
    "list_backup_files",
    "delete_backup_file",
    "backup_directory_size",
    "mime_type_for",
]

logger = logging.getLogger(__name__)

EXPORT_PROGRESS_INTERVAL = 500
TABLE_COLUMNS = ["Name", "Phone", "Email", "Company"]
XLSX_SHEET_NAME = "Contacts"
XLSX_COLUMN_WIDTHS = (25, 20, 30, 20)

_SCIENTIFIC_RE = re.compile(r"^\d+\.?\d*[eE][+\-]?\d+$")
_NON_DIGIT_RE = re.compile(r"\D")


class ExportFormat(str, Enum):
    VCF = "vcf"
    CSV = "csv"
    XLSX = "xlsx"


class ExportPhase(Enum):
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    DONE = "done"


@dataclass(frozen=True)
class ExportProgress:
    phase: ExportPhase
    processed: int
    total: int
    message: str


ExportProgressCallback = Callable[[ExportProgress], None]


class ExportError(Exception):
    pass


class InsufficientStorageError(ExportError):
    pass


class StoragePermissionError(ExportError):
    pass


@dataclass(frozen=True)
class BackupRecord:
    file_name: str
    file_path: str
    format: ExportFormat
    contact_count: int
    file_size: int
    created_at: str  # ISO8601 UTC
    is_auto_backup: bool = False


@dataclass(frozen=True)
class ExportResult:
    file_path: Path
    duplicates_removed: int
    record: BackupRecord


# --------------------------------------------------------------- phone safety

def safe_phone(phone: Any) -> str:
    """Plain-string phone; never a float repr or scientific notation."""
    if phone is None or isinstance(phone, bool):
        return ""
    if isinstance(phone, Real):
        return number_to_digits(phone)
    text = str(phone).strip()
    if _SCIENTIFIC_RE.match(text):
        try:
            return str(int(Decimal(text)))
        except (InvalidOperation, ValueError):
            return text
    return text


def _phone_key(phone: Any, key_length: int) -> str:
    digits = _NON_DIGIT_RE.sub("", safe_phone(phone))
    return digits[-key_length:] if len(digits) >= key_length else digits


def safe_join_phones(phones: Iterable[Any], *, key_length: int = LOOKUP_KEY_LENGTH) -> str:
    """Join phones with '; ', dropping repeats of the same lookup key."""
    seen: set[str] = set()
    unique: list[str] = []
    for phone in phones:
        safe = safe_phone(phone)
        if not safe:
            continue
        key = _phone_key(safe, key_length)
        if key and key in seen:
            continue
        if key:
            seen.add(key)
        unique.append(safe)
    return "; ".join(unique)


def _report(
    on_progress: ExportProgressCallback | None,
    phase: ExportPhase,
    processed: int,
    total: int,
    message: str,
) -> None:
    if on_progress is not None:
        on_progress(ExportProgress(phase, processed, total, message))


def _tick(on_progress: ExportProgressCallback | None, i: int, total: int) -> None:
    if on_progress is not None and i % EXPORT_PROGRESS_INTERVAL == 0:
        _report(on_progress, ExportPhase.PROCESSING, i, total, f"Processing {i}/{total}...")


def _require_contacts(contacts: Sequence[DeviceContact], fmt: ExportFormat) -> None:
    if not contacts:
        raise ExportError(f"No contacts to export to {fmt.value.upper()}")


# ------------------------------------------------------------------------ VCF

def _escape_vcf(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def contact_to_vcard(contact: DeviceContact) -> str:
    """vCard 3.0 for one contact (CRLF line endings)."""
    parts = contact.name.split()
    first = parts[0] if parts else ""
    last = " ".join(parts[1:])
    lines = [
        "BEGIN:VCARD",
        "VERSION:3.0",
        f"FN:{_escape_vcf(contact.name)}",
        f"N:{_escape_vcf(last)};{_escape_vcf(first)};;;",
    ]
    for phone in contact.phones:
        safe = safe_phone(phone)
        if safe:
            lines.append(f"TEL;TYPE=CELL:{safe}")
    for email in contact.emails:
        lines.append(f"EMAIL;TYPE=INTERNET:{_escape_vcf(email)}")
    if contact.company:
        lines.append(f"ORG:{_escape_vcf(contact.company)}")
    lines.append("END:VCARD")
    return "\r\n".join(lines)


def _stub_vcard(contact: Any) -> str:
    name = getattr(contact, "name", None)
    name = name if isinstance(name, str) and name else "Unknown"
    return "\r\n".join(["BEGIN:VCARD", "VERSION:3.0", f"FN:{_escape_vcf(name)}", "END:VCARD"])


def encode_vcf(
    contacts: Sequence[DeviceContact],
    on_progress: ExportProgressCallback | None = None,
) -> str:
    """All contacts as one vCard 3.0 document.

    A malformed contact becomes a minimal stub card instead of failing the
    whole export.
    """
    _require_contacts(contacts, ExportFormat.VCF)
    total = len(contacts)
    cards: list[str] = []
    for i, contact in enumerate(contacts):
        try:
            cards.append(contact_to_vcard(contact))
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"vcf: contact #{i} malformed, writing stub card: {e}")
            cards.append(_stub_vcard(contact))
        _tick(on_progress, i, total)
    _report(on_progress, ExportPhase.WRITING, total, total, "Saving file...")
    return "\r\n".join(cards) + "\r\n"


# ------------------------------------------------------------------------ CSV

def _phone_text_literal(phone: str) -> str:
    # ="..." でスプレッドシートに文字列として扱わせる
    return '="' + phone.replace('"', '""') + '"'


def _table_rows(
    contacts: Sequence[DeviceContact],
    on_progress: ExportProgressCallback | None,
    *,
    phone_cell: Callable[[str], str],
) -> list[list[str]]:
    total = len(contacts)
    rows: list[list[str]] = []
    for i, c in enumerate(contacts):
        try:
            rows.append([
                c.name or "",
                phone_cell(safe_join_phones(c.phones)),
                "; ".join(c.emails),
                c.company or "",
            ])
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"export: contact #{i} malformed, writing name only: {e}")
            name = getattr(c, "name", None)
            rows.append([name if isinstance(name, str) and name else "Unknown", "", "", ""])
        _tick(on_progress, i, total)
    return rows


def encode_csv(
    contacts: Sequence[DeviceContact],
    on_progress: ExportProgressCallback | None = None,
) -> str:
    """CSV with header Name,Phone,Email,Company; phones as ="..." literals."""
    _require_contacts(contacts, ExportFormat.CSV)
    rows = _table_rows(contacts, on_progress, phone_cell=_phone_text_literal)
    _report(on_progress, ExportPhase.WRITING, len(contacts), len(contacts), "Saving file...")
    df = pd.DataFrame(rows, columns=TABLE_COLUMNS, dtype=object)
    return df.to_csv(index=False, lineterminator="\n")


# ----------------------------------------------------------------------- XLSX

def encode_xlsx(
    contacts: Sequence[DeviceContact],
    on_progress: ExportProgressCallback | None = None,
) -> bytes:
    """XLSX workbook bytes. Phone cells are text typed with format '@'."""
    _require_contacts(contacts, ExportFormat.XLSX)
    rows = _table_rows(contacts, on_progress, phone_cell=lambda p: p)
    _report(on_progress, ExportPhase.WRITING, len(contacts), len(contacts), "Creating Excel file...")

    df = pd.DataFrame(rows, columns=TABLE_COLUMNS, dtype=object)
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=XLSX_SHEET_NAME, index=False)
        ws = writer.sheets[XLSX_SHEET_NAME]
        # B 列 (Phone) を文字列セル + 書式 '@' に固定
        for (cell,) in ws.iter_rows(min_row=2, min_col=2, max_col=2):
            cell.value = "" if cell.value is None else str(cell.value)
            cell.data_type = "s"
            cell.number_format = "@"
        for letter, width in zip("ABCD", XLSX_COLUMN_WIDTHS, strict=True):
            ws.column_dimensions[letter].width = width
    return buf.getvalue()


# ---------------------------------------------------------------------- merge

def merge_duplicates(
    contacts: Iterable[DeviceContact],
    *,
    key_length: int = LOOKUP_KEY_LENGTH,
) -> tuple[list[DeviceContact], int]:
    """Merge contacts sharing a phone lookup key.

    The first occurrence survives. Later duplicates only add: phones with a
    new key, emails not yet present (case-insensitive), and the company when
    the survivor has none. Returns (merged contacts, number removed).
    """
    merged: list[dict[str, Any]] = []
    owner: dict[str, int] = {}
    seen_total = 0

    for contact in contacts:
        seen_total += 1
        keys = [k for k in (_phone_key(p, key_length) for p in contact.phones) if k]
        target = next((owner[k] for k in keys if k in owner), None)

        if target is None:
            entry = {"contact": contact, "phones": [], "phone_keys": set(),
                     "emails": [], "email_keys": set(), "company": contact.company}
            merged.append(entry)
            target = len(merged) - 1
        else:
            entry = merged[target]

        for phone in contact.phones:
            key = _phone_key(phone, key_length)
            if key and key in entry["phone_keys"]:
                continue
            if key:
                entry["phone_keys"].add(key)
            entry["phones"].append(phone if isinstance(phone, str) else safe_phone(phone))
        for email in contact.emails:
            if email and email.lower() not in entry["email_keys"]:
                entry["email_keys"].add(email.lower())
                entry["emails"].append(email)
        if not entry["company"] and contact.company:
            entry["company"] = contact.company
        for key in keys:
            owner.setdefault(key, target)

    result = [
        replace(
            e["contact"],
            phones=tuple(e["phones"]),
            lookup_keys=tuple(
                k for k in (_phone_key(p, key_length) for p in e["phones"]) if k
            ),
            emails=tuple(e["emails"]),
            company=e["company"],
        )
        for e in merged
    ]
    return result, seen_total - len(result)


# ----------------------------------------------------------------- file output

def _timestamped_name(fmt: ExportFormat, prefix: str = "contacts") -> str:
    ts = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S")
    return f"{prefix}_{ts}.{fmt.value}"


def _unique_path(directory: Path, file_name: str) -> Path:
    path = directory / file_name
    counter = 1
    while path.exists():
        path = directory / f"{Path(file_name).stem}_{counter}{Path(file_name).suffix}"
        counter += 1
    return path


def _classify_export_error(fmt: ExportFormat, error: Exception) -> ExportError:
    msg = str(error)
    code = getattr(error, "errno", None)
    if code == errno.ENOSPC or any(p in msg for p in ("No space", "ENOSPC", "disk full")):
        return InsufficientStorageError(
            "Not enough storage space to create the backup file. "
            "Please free some space and try again."
        )
    if (
        isinstance(error, PermissionError)
        or code == errno.EACCES
        or "permission" in msg.lower()
        or "EACCES" in msg
    ):
        return StoragePermissionError(
            "File system permission denied. Please check app storage permissions."
        )
    return ExportError(f"Export to {fmt.value.upper()} failed: {msg}")


def export_contacts(
    store: Any,
    fmt: ExportFormat | str,
    output_dir: Path,
    *,
    merge: bool = False,
    contact_ids: Iterable[str] | None = None,
    on_progress: ExportProgressCallback | None = None,
    key_length: int = LOOKUP_KEY_LENGTH,
) -> ExportResult:
    """Read contacts from ``store`` and write a timestamped backup file.

    ``store`` only needs ``list_contacts()``. ``contact_ids`` restricts the
    export to those ids.

    Raises:
        ExportError: nothing to export, device read failure, unknown format
        InsufficientStorageError / StoragePermissionError: classified I/O errors
    """
    try:
        fmt = ExportFormat(fmt)
    except ValueError as e:
        raise ExportError(f"Unsupported export format: {fmt}") from e

    _report(on_progress, ExportPhase.READING, 0, 0, "Reading contacts...")
    try:
        contacts = list(store.list_contacts())
    except Exception as e:
        raise ExportError(f"Failed to read device contacts: {e}") from e

    if contact_ids is not None:
        wanted = set(contact_ids)
        if wanted:
            contacts = [c for c in contacts if c.id in wanted]

    if not contacts:
        raise ExportError(
            "No contacts to export. Please check contacts permission and ensure "
            "you have contacts on the device."
        )

    duplicates_removed = 0
    if merge:
        contacts, duplicates_removed = merge_duplicates(contacts, key_length=key_length)
        message = (
            f"Merged {duplicates_removed} duplicates. Exporting {len(contacts)} contacts..."
            if duplicates_removed
            else f"No duplicates found. Exporting {len(contacts)} contacts..."
        )
        _report(on_progress, ExportPhase.PROCESSING, 0, len(contacts), message)

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        path = _unique_path(output_dir, _timestamped_name(fmt))
        if fmt is ExportFormat.VCF:
            path.write_text(encode_vcf(contacts, on_progress), encoding="utf-8", newline="")
        elif fmt is ExportFormat.CSV:
            path.write_text(encode_csv(contacts, on_progress), encoding="utf-8", newline="")
        else:
            path.write_bytes(encode_xlsx(contacts, on_progress))
    except ExportError:
        raise
    except (OSError, ValueError) as e:
        raise _classify_export_error(fmt, e) from e

    try:
        size = path.stat().st_size
    except OSError:
        size = 0  # ファイル自体は作成済み

    _report(on_progress, ExportPhase.DONE, len(contacts), len(contacts), "Done!")
    logger.info(f"exported {len(contacts)} contacts to {path} ({duplicates_removed} merged)")

    record = BackupRecord(
        file_name=path.name,
        file_path=str(path),
        format=fmt,
        contact_count=len(contacts),
        file_size=size,
        created_at=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
    )
    return ExportResult(file_path=path, duplicates_removed=duplicates_removed, record=record)


# ------------------------------------------------------------- backup management

def list_backup_files(directory: Path) -> list[Path]:
    if not directory.exists():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file())


def delete_backup_file(path: Path) -> bool:
    """Delete a backup file. Returns False when it did not exist."""
    if not path.exists():
        return False
    path.unlink()
    return True


def backup_directory_size(directory: Path) -> int:
    return sum(p.stat().st_size for p in list_backup_files(directory))


_MIME_TYPES = {
    ".vcf": "text/vcard",
    ".csv": "text/csv",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def mime_type_for(path: Path | str) -> str:
    return _MIME_TYPES.get(Path(path).suffix.lower(), "application/octet-stream")
