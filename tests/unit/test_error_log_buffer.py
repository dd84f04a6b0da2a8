from __future__ import annotations

import json
import re
from pathlib import Path

from contact_importer.logging.error_log import ErrorLogBuffer, classify_row_error
from contact_importer.models.error_record import RowErrorRecord
from contact_importer.models.import_progress import RowError

KEYS = {"timestamp", "file", "row", "contact_name", "phone", "error_type", "message"}


def test_error_record_creation_and_json_line():
    rec = RowErrorRecord.create(
        file="contacts.xlsx",
        row=10,
        error_type="DEVICE_WRITE_ERROR",
        message="device rejected",
        contact_name="Ravi",
        phone="9876543210",
    )
    data = json.loads(rec.to_json_line())
    assert data["file"] == "contacts.xlsx"
    assert data["row"] == 10
    assert data["contact_name"] == "Ravi"
    assert data["timestamp"].endswith("Z")
    assert set(data.keys()) == KEYS


def test_error_record_keeps_non_ascii():
    rec = RowErrorRecord.create("c.xlsx", 1, "VALIDATION_ERROR", "x", contact_name="பெயர்")
    assert "பெயர்" in rec.to_json_line()


def test_error_log_buffer_flush(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(RowErrorRecord.create("c.xlsx", 1, "VALIDATION_ERROR", "Name is required"))
    buf.append(RowErrorRecord.create("c.xlsx", 2, "DEVICE_WRITE_ERROR", "boom"))
    path = buf.flush()
    assert path is not None and path.exists()
    assert path.parent == Path("./logs")
    assert re.fullmatch(r"import-errors-\d{8}-\d{6}\.log", path.name)
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    for raw in lines:
        assert set(json.loads(raw).keys()) == KEYS
    # flush 後バッファクリア
    assert len(buf) == 0


def test_flush_empty_buffer_creates_nothing(temp_workdir: Path):
    buf = ErrorLogBuffer(temp_workdir / "elsewhere")
    assert buf.flush() is None
    assert not (temp_workdir / "elsewhere").exists()


def test_multiple_flushes_append_to_same_file(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(RowErrorRecord.create("c.xlsx", 1, "VALIDATION_ERROR", "a"))
    path = buf.flush()
    buf.append(RowErrorRecord.create("c.xlsx", 2, "VALIDATION_ERROR", "b"))
    path2 = buf.flush()
    assert path == path2
    assert len(path.read_text(encoding="utf-8").splitlines()) == 2


def test_extend_from_progress_classifies(temp_workdir: Path):
    errors = [
        RowError(-1, "", "", "Contacts permission not granted.", kind="PERMISSION_DENIED"),
        RowError(3, "Ravi", "9876543210", "boom"),
        RowError(4, "Anu", "123", "Phone must have", kind="VALIDATION_ERROR"),
    ]
    buf = ErrorLogBuffer()
    buf.extend_from_progress("c.xlsx", errors)
    path = buf.flush()
    rows = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [r["error_type"] for r in rows] == [
        "PERMISSION_DENIED", "DEVICE_WRITE_ERROR", "VALIDATION_ERROR",
    ]
    assert rows[0]["row"] == -1
    assert rows[1]["contact_name"] == "Ravi"


def test_classify_run_level_write_error():
    assert classify_row_error(RowError(-1, "", "", "x")) == "RUN_ERROR"
