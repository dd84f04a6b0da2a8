from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from contact_importer.excel.reader import (
    EmptyFileError,
    FileParseError,
    TooManyRowsError,
    UnsupportedFileTypeError,
    parse_file,
)


def _make_excel(tmp_path: Path, name: str, sheets: dict[str, list[list[object]]]) -> Path:
    p = tmp_path / name
    with pd.ExcelWriter(p, engine="openpyxl") as writer:
        for sheet, rows in sheets.items():
            df = pd.DataFrame(rows)
            df.to_excel(writer, sheet_name=sheet, header=False, index=False)
    return p


def test_xlsx_first_sheet_only(temp_workdir: Path):
    excel = _make_excel(
        temp_workdir, "contacts.xlsx",
        {
            "Contacts": [
                ["Name", "Phone"],
                ["Alice", 9876543210],
                ["Bob", "+91 91234 56789"],
            ],
            "Other": [["X"], ["ignored"]],
        },
    )
    parsed = parse_file(excel)
    assert parsed.file_name == "contacts.xlsx"
    assert parsed.headers == ["Name", "Phone"]
    assert parsed.row_count == 2
    assert parsed.rows[0] == {"Name": "Alice", "Phone": 9876543210}
    assert parsed.rows[1]["Phone"] == "+91 91234 56789"
    assert parsed.parse_date.endswith("Z")


def test_xlsx_empty_cells_and_blank_rows(temp_workdir: Path):
    excel = _make_excel(
        temp_workdir, "gaps.xlsx",
        {"S": [["Name", "Phone", "Email"], ["A", "9876543210", None], [None, None, None],
               ["B", "9123456789", "b@x.io"]]},
    )
    parsed = parse_file(excel)
    assert parsed.row_count == 2
    assert parsed.rows[0]["Email"] == ""


def test_xlsx_from_bytes(temp_workdir: Path):
    excel = _make_excel(temp_workdir, "b.xlsx", {"S": [["Name", "Phone"], ["A", "1"]]})
    parsed = parse_file(excel.read_bytes(), "upload.xlsx")
    assert parsed.file_name == "upload.xlsx"
    assert parsed.row_count == 1


def test_csv_keeps_leading_zero_and_plus(temp_workdir: Path):
    p = temp_workdir / "c.csv"
    p.write_text("Name,Phone\nA,04423456789\nB,+919876543210\n", encoding="utf-8")
    parsed = parse_file(p)
    assert [r["Phone"] for r in parsed.rows] == ["04423456789", "+919876543210"]


def test_csv_header_only_is_empty(temp_workdir: Path):
    p = temp_workdir / "h.csv"
    p.write_text("Name,Phone\n", encoding="utf-8")
    with pytest.raises(EmptyFileError):
        parse_file(p)


def test_zero_byte_csv_is_empty(temp_workdir: Path):
    p = temp_workdir / "z.csv"
    p.write_bytes(b"")
    with pytest.raises(EmptyFileError):
        parse_file(p)


def test_too_many_rows(temp_workdir: Path):
    p = temp_workdir / "big.csv"
    p.write_text("Name,Phone\n" + "".join(f"P{i},98765{i:05d}\n" for i in range(6)), encoding="utf-8")
    with pytest.raises(TooManyRowsError, match="Maximum supported is 5"):
        parse_file(p, max_rows=5)


def test_unsupported_extension(temp_workdir: Path):
    p = temp_workdir / "x.txt"
    p.write_text("Name,Phone\n", encoding="utf-8")
    with pytest.raises(UnsupportedFileTypeError):
        parse_file(p)


def test_bytes_without_name_rejected():
    with pytest.raises(UnsupportedFileTypeError):
        parse_file(b"abc")


def test_corrupt_xlsx(temp_workdir: Path):
    p = temp_workdir / "bad.xlsx"
    p.write_bytes(b"not a zip")
    with pytest.raises(FileParseError):
        parse_file(p)
