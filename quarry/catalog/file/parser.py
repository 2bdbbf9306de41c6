# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Decoding of uploaded tabular files into typed rows and columns.

Supported formats are CSV, Excel (xlsx/xls) and JSON (array, single object
or JSON Lines). Parquet is recognized but not implemented.

CSV cells are kept as trimmed strings; type inference only describes the
column, it does not coerce the row values.
"""

import io
import json
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

import numpy as np
import pandas as pd
from dateutil import parser as date_parser

from quarry.core.errors import ParseError, UnsupportedFormatError
from quarry.core.models import ColumnDefinition, DataType, ParsedFileData

logger = logging.getLogger(__name__)

SAMPLE_DATA_ROWS = 10
SAMPLE_VALUES_PER_COLUMN = 5

BOOLEAN_TOKENS = frozenset({"true", "false", "yes", "no", "1", "0", "y", "n"})

DATE_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2}|\d{2}/\d{2}/\d{4}|\d{2}-\d{2}-\d{4})")

SUPPORTED_EXTENSIONS = ("csv", "xlsx", "xls", "json", "parquet")


@dataclass
class ParseOptions:
    """Options accepted by parse_file."""
    limit: Optional[int] = None  # Truncate returned rows for preview
    detect_schema: bool = True  # False types every column as string


@dataclass
class FileMetadata:
    """Header-level facts about a file, without typing its columns."""
    row_count: int
    column_count: int
    columns: list[str] = field(default_factory=list)


def is_null(value: Any) -> bool:
    """None and empty strings count as missing."""
    return value is None or value == ""


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def is_date_value(value: Any) -> bool:
    if isinstance(value, (datetime, date, pd.Timestamp)):
        return True
    if not isinstance(value, str):
        return False
    text = value.strip()
    if DATE_PATTERN.match(text):
        return True
    # Bare words like "Alice" or "May" must not count as dates
    if not any(ch.isdigit() for ch in text):
        return False
    try:
        date_parser.parse(text)
    except (ValueError, OverflowError):
        return False
    return True


def detect_data_type(values: list[Any]) -> DataType:
    """
    Infer a column type from its values.

    Checked in order: numeric (integer when every value is integral, else
    decimal), date, boolean, string. Missing values are ignored and a column
    with no values at all is a string column.

    Args:
        values: Raw column values

    Returns:
        The inferred DataType
    """
    present = [v for v in values if not is_null(v)]
    if not present:
        return DataType.STRING

    numbers = [to_number(v) for v in present]
    if all(n is not None for n in numbers):
        if all(n.is_integer() for n in numbers):
            return DataType.INTEGER
        return DataType.DECIMAL

    if all(is_date_value(v) for v in present):
        return DataType.DATE

    if all(isinstance(v, bool) or str(v).strip().lower() in BOOLEAN_TOKENS for v in present):
        return DataType.BOOLEAN

    return DataType.STRING


def _file_extension(file_name: str) -> str:
    if "." not in file_name:
        raise UnsupportedFormatError(f"Cannot determine file type of '{file_name}'")
    return file_name.rsplit(".", 1)[-1].lower()


def _clean_cell(value: Any) -> Any:
    """Convert pandas/numpy cell values to plain Python values."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value if value else None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, (float, np.floating)):
        return None if math.isnan(value) else float(value)
    if value is pd.NaT:
        return None
    return value


def _frame_to_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    columns = [str(c).strip() for c in df.columns]
    rows = []
    for record in df.itertuples(index=False, name=None):
        rows.append({col: _clean_cell(val) for col, val in zip(columns, record)})
    return rows


def _decode_csv(buffer: bytes) -> list[dict[str, Any]]:
    try:
        df = pd.read_csv(
            io.BytesIO(buffer),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, UnicodeDecodeError, ValueError) as e:
        raise ParseError(f"Failed to parse CSV: {e}", file_type="csv") from e
    return _frame_to_rows(df)


def _decode_excel(buffer: bytes, extension: str) -> list[dict[str, Any]]:
    try:
        df = pd.read_excel(io.BytesIO(buffer), sheet_name=0)
    except Exception as e:
        # openpyxl and xlrd raise a wide range of exception types on bad input
        raise ParseError(f"Failed to parse Excel: {e}", file_type=extension) from e
    df = df.dropna(how="all")
    return _frame_to_rows(df)


def _decode_json(buffer: bytes) -> list[dict[str, Any]]:
    try:
        text = buffer.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(f"Failed to parse JSON: {e}", file_type="json") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        # JSON Lines fallback
        data = []
        for line in text.splitlines():
            if not line.strip():
                continue
            try:
                data.append(json.loads(line))
            except json.JSONDecodeError:
                raise ParseError(f"Failed to parse JSON: {e}", file_type="json") from e
        logger.debug(f"Parsed {len(data)} JSON Lines records")

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ParseError("Failed to parse JSON: expected an array or object", file_type="json")
    for i, row in enumerate(data):
        if not isinstance(row, dict):
            raise ParseError(
                f"Failed to parse JSON: row {i} is {type(row).__name__}, expected an object",
                file_type="json",
            )
    return data


def union_columns(rows: list[dict[str, Any]]) -> list[str]:
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


def decode_rows(buffer: bytes, file_name: str) -> list[dict[str, Any]]:
    """Decode a file buffer into row mappings without any typing."""
    extension = _file_extension(file_name)
    if extension == "csv":
        return _decode_csv(buffer)
    if extension in ("xlsx", "xls"):
        return _decode_excel(buffer, extension)
    if extension == "json":
        return _decode_json(buffer)
    if extension == "parquet":
        raise UnsupportedFormatError("Parquet files are not supported yet", extension=extension)
    raise UnsupportedFormatError(f"Unsupported file type: {extension}", extension=extension)


def build_columns(
    rows: list[dict[str, Any]],
    column_names: list[str],
    detect_schema: bool = True,
) -> list[ColumnDefinition]:
    """Describe each column from the full row set."""
    columns = []
    for name in column_names:
        values = [row.get(name) for row in rows]
        present = [v for v in values if not is_null(v)]
        columns.append(ColumnDefinition(
            column_name=name,
            data_type=detect_data_type(values) if detect_schema else DataType.STRING,
            is_nullable=len(present) < len(values),
            is_primary_key=False,
            sample_values=present[:SAMPLE_VALUES_PER_COLUMN],
        ))
    return columns


def parse_file(
    buffer: bytes,
    file_name: str,
    options: Optional[ParseOptions] = None,
) -> ParsedFileData:
    """
    Parse a file buffer into rows and typed columns.

    Args:
        buffer: Raw file bytes
        file_name: Name used to pick the decoder by extension
        options: Preview limit and schema detection toggle

    Returns:
        ParsedFileData whose row_count is the full parsed length even when
        the returned rows were truncated by options.limit

    Raises:
        ParseError: If the content is malformed
        UnsupportedFormatError: If the extension is unknown or not implemented
    """
    options = options or ParseOptions()
    rows = decode_rows(buffer, file_name)
    column_names = union_columns(rows)

    # Every row carries every column
    rows = [{name: row.get(name) for name in column_names} for row in rows]

    columns = build_columns(rows, column_names, options.detect_schema)
    limited = rows[:options.limit] if options.limit is not None else rows

    logger.debug(
        f"Parsed {file_name}: {len(rows)} rows, {len(column_names)} columns"
        f" (returning {len(limited)})"
    )
    return ParsedFileData(
        rows=limited,
        columns=columns,
        row_count=len(rows),
        column_count=len(column_names),
        sample_data=limited[:SAMPLE_DATA_ROWS],
    )


def get_file_metadata(buffer: bytes, file_name: str) -> FileMetadata:
    """Count rows and list header names without inferring types."""
    extension = _file_extension(file_name)
    if extension == "csv":
        try:
            header = pd.read_csv(io.BytesIO(buffer), nrows=0, encoding="utf-8-sig")
        except pd.errors.EmptyDataError:
            return FileMetadata(row_count=0, column_count=0)
        except (pd.errors.ParserError, UnicodeDecodeError, ValueError) as e:
            raise ParseError(f"Failed to parse CSV: {e}", file_type="csv") from e
        names = [str(c).strip() for c in header.columns]
        lines = [line for line in buffer.decode("utf-8-sig", errors="replace").splitlines() if line.strip()]
        return FileMetadata(row_count=max(0, len(lines) - 1), column_count=len(names), columns=names)

    rows = decode_rows(buffer, file_name)
    names = union_columns(rows)
    return FileMetadata(row_count=len(rows), column_count=len(names), columns=names)
