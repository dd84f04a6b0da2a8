from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.config_models import MAX_FILE_ROWS

"""Spreadsheet / CSV reader.

Reads the first sheet of an .xlsx/.xls workbook, or a .csv file, into a header
list plus raw rows (header -> cell). The first row is the header row.

- Empty cells become "" and rows where every cell is empty are dropped.
- Numeric cells stay numeric (int/float); phone sanitization happens in the
  row validator so that long numbers never pass through a float repr here.
- Input errors abort the parse before any row is handed out.
"""

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "FileParseError",
    "UnsupportedFileTypeError",
    "NoSheetsError",
    "EmptyFileError",
    "TooManyRowsError",
    "NoColumnsError",
    "ParsedFile",
    "parse_file",
]

SUPPORTED_EXTENSIONS = (".xlsx", ".xls", ".csv")


class FileParseError(Exception):
    """Base class for input errors (bad file, no sheets, empty data ...)."""


class UnsupportedFileTypeError(FileParseError):
    pass


class NoSheetsError(FileParseError):
    pass


class EmptyFileError(FileParseError):
    pass


class TooManyRowsError(FileParseError):
    pass


class NoColumnsError(FileParseError):
    pass


@dataclass
class ParsedFile:
    file_name: str
    headers: list[str]
    rows: list[dict[str, Any]]  # header -> raw cell
    row_count: int
    parse_date: str  # ISO8601 UTC


def _read_frame(source: Path | bytes, extension: str) -> pd.DataFrame:
    handle: Any = io.BytesIO(source) if isinstance(source, bytes) else source
    if extension == ".csv":
        # 全列 str で読み込み (先頭ゼロ / + を保持)
        return pd.read_csv(handle, dtype=str, keep_default_na=False, skipinitialspace=True)

    xls = pd.ExcelFile(handle)
    if not xls.sheet_names:
        raise NoSheetsError("No sheets found in the file")
    first = xls.sheet_names[0]
    return xls.parse(first, header=0, dtype=object)


def _clean_cell(value: Any) -> Any:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        return value
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        # numpy scalar -> Python scalar
        return value.item()
    return value


def parse_file(
    source: Path | bytes,
    file_name: str | None = None,
    *,
    max_rows: int = MAX_FILE_ROWS,
) -> ParsedFile:
    """Parse a spreadsheet from a path or raw bytes.

    Parameters
    ----------
    source: file path, or the file's raw bytes
    file_name: display name; required for bytes input (its extension picks the parser)
    max_rows: upper bound on data rows

    Raises
    ------
    FileParseError subclasses for every input error.
    """
    if file_name is None:
        if isinstance(source, bytes):
            raise UnsupportedFileTypeError("file_name is required when parsing raw bytes")
        file_name = source.name
    extension = Path(file_name).suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFileTypeError(
            f"Unsupported file type '{extension or file_name}'. "
            f"Supported: {', '.join(SUPPORTED_EXTENSIONS)}"
        )

    try:
        df = _read_frame(source, extension)
    except FileParseError:
        raise
    except pd.errors.EmptyDataError as e:
        raise EmptyFileError("The file is empty or has no data rows") from e
    except (OSError, ValueError, ImportError, zipfile.BadZipFile, pd.errors.ParserError) as e:
        raise FileParseError(f"Failed to parse the file. Please check the format. ({e})") from e

    headers = [str(c).strip() for c in df.columns]
    if not headers:
        raise NoColumnsError("No columns found in the file")

    rows: list[dict[str, Any]] = []
    for record in df.itertuples(index=False, name=None):
        row = {h: _clean_cell(v) for h, v in zip(headers, record, strict=False)}
        if all(v == "" for v in row.values()):
            continue
        rows.append(row)

    if not rows:
        raise EmptyFileError("The file is empty or has no data rows")
    if len(rows) > max_rows:
        raise TooManyRowsError(f"File has {len(rows)} rows. Maximum supported is {max_rows}.")

    return ParsedFile(
        file_name=file_name,
        headers=headers,
        rows=rows,
        row_count=len(rows),
        parse_date=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
    )
