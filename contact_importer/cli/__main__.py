from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from contact_importer.config.loader import ConfigError, apply_env_overrides, load_settings
from contact_importer.excel.reader import FileParseError, ParsedFile, parse_file
from contact_importer.logging.error_log import ErrorLogBuffer
from contact_importer.logging.init import log_summary, setup_logging
from contact_importer.models.config_models import ImporterSettings
from contact_importer.models.contact import ContactCandidate, DuplicateAction
from contact_importer.models.error_record import RowErrorRecord
from contact_importer.models.import_progress import ImportState
from contact_importer.services.bulk_import import (
    BulkImporter,
    build_import_record,
    select_for_import,
)
from contact_importer.services.column_mapper import auto_detect_columns
from contact_importer.services.duplicates import check_duplicates
from contact_importer.services.export import ExportError, ExportFormat, export_contacts
from contact_importer.services.progress import ImportProgressBar
from contact_importer.services.summary import render_summary_line
from contact_importer.services.validator import RowValidator, summarize_validity
from contact_importer.storage.history import JsonContactStore, JsonHistoryStore, StorageError

"""CLI entrypoint.

Subcommands:
- inspect: parse + auto-map + validate, print what an import would see
- import:  full pipeline into a JSON contact store, SUMMARY line, error log, history
- export:  backup a JSON contact store to VCF / CSV / XLSX
- undo:    remove the contacts created by a recorded import

Exit codes: 0 success, 2 some rows failed, 1 fatal (input, config, permission).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv (values win over the current environment)."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="contact-importer", description="Spreadsheet -> contacts importer"
    )
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=None, help="Settings YAML file")
    sub = p.add_subparsers(dest="command", required=True)

    ins = sub.add_parser("inspect", help="Show headers, detected mapping and validity counts")
    ins.add_argument("file", type=Path)

    imp = sub.add_parser("import", help="Import a spreadsheet into a JSON contact store")
    imp.add_argument("file", type=Path)
    imp.add_argument("--store", type=Path, required=True, help="JSON contact store")
    imp.add_argument("--history", type=Path, default=None, help="JSON import history file")
    imp.add_argument(
        "--action",
        choices=[a.value for a in DuplicateAction],
        default=None,
        help="Action for duplicate rows (default from settings)",
    )
    imp.add_argument("--dry-run", action="store_true", help="Validate and classify only")

    exp = sub.add_parser("export", help="Export a JSON contact store")
    exp.add_argument("--store", type=Path, required=True)
    exp.add_argument("--format", choices=[f.value for f in ExportFormat], default="vcf")
    exp.add_argument("--merge", action="store_true", help="Merge contacts sharing a phone")
    exp.add_argument("--out", type=Path, default=None, help="Output directory")

    und = sub.add_parser("undo", help="Remove contacts created by a recorded import")
    und.add_argument("record_id")
    und.add_argument("--store", type=Path, required=True)
    und.add_argument("--history", type=Path, required=True)
    return p.parse_args(argv)


def _prepare_candidates(
    parsed: ParsedFile, settings: ImporterSettings, logger: logging.Logger
) -> list[ContactCandidate] | None:
    mapping = auto_detect_columns(parsed.headers)
    logger.info(f"mapping: {mapping.to_dict()}")
    if not mapping.is_complete:
        logger.error("mapping: could not detect both a name and a phone column")
        return None
    validator = RowValidator(
        min_digits=settings.phone_min_digits, max_digits=settings.phone_max_digits
    )
    return validator.to_candidates(parsed.rows, mapping)


def _inspect(args: argparse.Namespace, settings: ImporterSettings, logger: logging.Logger) -> int:
    try:
        parsed = parse_file(args.file, max_rows=settings.max_file_rows)
    except FileParseError as e:
        logger.error(f"parse: {e}")
        return EXIT_FATAL

    print(f"FILE: {parsed.file_name} rows={parsed.row_count}")
    print(f"  headers={parsed.headers}")
    candidates = _prepare_candidates(parsed, settings, logger)
    if candidates is None:
        return EXIT_FATAL
    summary = summarize_validity(candidates)
    print(f"  valid={summary.valid} invalid={summary.invalid} total={summary.total}")
    for i, c in enumerate(candidates):
        if not c.is_valid:
            print(f"    row {i + 1}: {'; '.join(c.validation_errors)}")
    return EXIT_SUCCESS_ALL


def _import(args: argparse.Namespace, settings: ImporterSettings, logger: logging.Logger) -> int:
    try:
        parsed = parse_file(args.file, max_rows=settings.max_file_rows)
    except FileParseError as e:
        logger.error(f"parse: {e}")
        return EXIT_FATAL

    candidates = _prepare_candidates(parsed, settings, logger)
    if candidates is None:
        return EXIT_FATAL

    try:
        store = JsonContactStore(args.store, key_length=settings.lookup_key_length)
    except StorageError as e:
        logger.error(f"store: {e}")
        return EXIT_FATAL

    action = DuplicateAction(args.action) if args.action else settings.default_duplicate_action
    checked = check_duplicates(
        candidates, store.list_contacts(), action, key_length=settings.lookup_key_length
    )
    annotated = {c.id: c for c in (*checked.new_contacts, *checked.duplicates)}
    rows = select_for_import(annotated[c.id] for c in candidates if c.id in annotated)
    logger.info(
        f"classified: new={len(checked.new_contacts)} duplicates={len(checked.duplicates)} "
        f"invalid={len(candidates) - len(annotated)} action={action.value}"
    )

    errors = ErrorLogBuffer(Path(settings.logs_dir))
    for i, c in enumerate(candidates):
        if not c.is_valid:
            errors.append(
                RowErrorRecord.create(
                    parsed.file_name, i, "VALIDATION_ERROR", "; ".join(c.validation_errors),
                    contact_name=c.name, phone=c.phone,
                )
            )

    if args.dry_run:
        logger.info(f"dry-run: {len(rows)} rows would be imported")
        return EXIT_SUCCESS_ALL

    importer = BulkImporter.from_settings(store, settings)
    with ImportProgressBar(len(rows)) as bar:
        outcome = importer.run(rows, on_progress=bar.observe)
    progress = outcome.progress

    log_summary(render_summary_line(progress)[len("SUMMARY "):])

    errors.extend_from_progress(parsed.file_name, progress.errors)
    error_count = len(errors)
    log_path = errors.flush()
    if log_path is not None:
        logger.warning(f"{error_count} row errors written to {log_path}")

    if args.history is not None:
        try:
            JsonHistoryStore(args.history, settings.history_limit).append(
                build_import_record(parsed.file_name, outcome)
            )
        except StorageError as e:
            logger.error(f"history: {e}")

    if progress.state is ImportState.PERMISSION_DENIED:
        return EXIT_FATAL
    if progress.failed > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _export(args: argparse.Namespace, settings: ImporterSettings, logger: logging.Logger) -> int:
    out_dir = args.out if args.out is not None else Path(settings.backup_dir)
    try:
        store = JsonContactStore(args.store, key_length=settings.lookup_key_length)
        result = export_contacts(
            store,
            args.format,
            out_dir,
            merge=args.merge,
            key_length=settings.lookup_key_length,
        )
    except (StorageError, ExportError) as e:
        logger.error(f"export: {e}")
        return EXIT_FATAL
    logger.info(
        f"export: {result.record.contact_count} contacts -> {result.file_path} "
        f"(merged={result.duplicates_removed})"
    )
    return EXIT_SUCCESS_ALL


def _undo(args: argparse.Namespace, settings: ImporterSettings, logger: logging.Logger) -> int:
    history = JsonHistoryStore(args.history, settings.history_limit)
    record = next((r for r in history.load() if r.id == args.record_id), None)
    if record is None:
        logger.error(f"undo: no import record {args.record_id}")
        return EXIT_FATAL
    if not record.can_undo:
        logger.error(f"undo: import {record.id} cannot be undone")
        return EXIT_FATAL
    try:
        store = JsonContactStore(args.store, key_length=settings.lookup_key_length)
        result = BulkImporter.from_settings(store, settings).undo(record.contact_ids)
        history.mark_undone(record.id)
    except StorageError as e:
        logger.error(f"undo: {e}")
        return EXIT_FATAL
    logger.info(f"undo: removed={result.removed} failed={result.failed}")
    return EXIT_PARTIAL_FAILURE if result.failed else EXIT_SUCCESS_ALL


_COMMANDS = {
    "inspect": _inspect,
    "import": _import,
    "export": _export,
    "undo": _undo,
}


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None のときのみ sys.argv を読む ([] はテストからの明示的な空引数)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        for h in logger.handlers:
            h.setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
        logger.debug("debug mode enabled")

    try:
        settings = apply_env_overrides(load_settings(args.config))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    return _COMMANDS[args.command](args, settings, logger)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
