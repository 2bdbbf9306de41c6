# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Tests for file decoding and column type inference."""

import io
import json

import pandas as pd
import pytest

from quarry.catalog.file import (
    FileConnector,
    LocalFileStore,
    ParseOptions,
    get_file_metadata,
    parse_file,
)
from quarry.catalog.file.parser import detect_data_type, is_date_value, union_columns
from quarry.core.config import FileSourceConfig
from quarry.core.errors import ParseError, UnsupportedFormatError
from quarry.core.models import DataType


class TestDetectDataType:
    """Type inference over raw column values."""

    def test_integers(self):
        assert detect_data_type(["1", "2", "3"]) == DataType.INTEGER

    def test_mixed_integer_and_decimal_is_decimal(self):
        assert detect_data_type(["1", "2.5"]) == DataType.DECIMAL

    def test_native_numbers(self):
        assert detect_data_type([1, 2.0, 3]) == DataType.INTEGER
        assert detect_data_type([1.5, 2]) == DataType.DECIMAL

    def test_dates(self):
        assert detect_data_type(["2024-01-01", "2024-02-15"]) == DataType.DATE
        assert detect_data_type(["01/31/2024", "02/01/2024"]) == DataType.DATE

    def test_booleans(self):
        assert detect_data_type(["true", "False", "yes"]) == DataType.BOOLEAN
        assert detect_data_type([True, False]) == DataType.BOOLEAN

    def test_zero_and_one_are_numbers_first(self):
        assert detect_data_type(["0", "1"]) == DataType.INTEGER

    def test_strings(self):
        assert detect_data_type(["Alice", "Bob"]) == DataType.STRING

    def test_missing_values_ignored(self):
        assert detect_data_type(["30", None, "", "25"]) == DataType.INTEGER

    def test_all_missing_is_string(self):
        assert detect_data_type([None, ""]) == DataType.STRING
        assert detect_data_type([]) == DataType.STRING

    def test_words_are_not_dates(self):
        assert not is_date_value("May")
        assert not is_date_value("Alice")
        assert is_date_value("2024-03-01T10:00:00")


class TestParseCSV:
    """CSV parsing end to end."""

    def test_people_csv(self, people_csv):
        parsed = parse_file(people_csv, "people.csv")

        assert parsed.row_count == 3
        assert parsed.column_count == 2
        assert parsed.column_names == ["name", "age"]
        assert parsed.rows[1] == {"name": "Bob", "age": None}

        age = parsed.columns[1]
        assert age.data_type == DataType.INTEGER
        assert age.is_nullable is True
        assert age.sample_values == ["30", "25"]

        name = parsed.columns[0]
        assert name.data_type == DataType.STRING
        assert name.is_nullable is False

    def test_values_are_trimmed(self):
        parsed = parse_file(b"a,b\n  x  , 1 \n", "t.csv")
        assert parsed.rows == [{"a": "x", "b": "1"}]

    def test_limit_truncates_rows_but_not_row_count(self, people_csv):
        parsed = parse_file(people_csv, "people.csv", ParseOptions(limit=1))
        assert len(parsed.rows) == 1
        assert parsed.row_count == 3

    def test_detect_schema_off_types_everything_as_string(self, people_csv):
        parsed = parse_file(people_csv, "people.csv", ParseOptions(detect_schema=False))
        assert {c.data_type for c in parsed.columns} == {DataType.STRING}

    def test_empty_file(self):
        parsed = parse_file(b"", "empty.csv")
        assert parsed.row_count == 0
        assert parsed.columns == []

    def test_bom_is_stripped_from_header(self):
        parsed = parse_file("\ufeffid,v\n1,a\n".encode("utf-8"), "bom.csv")
        assert parsed.column_names == ["id", "v"]

    def test_sample_data_capped(self):
        body = "n\n" + "\n".join(str(i) for i in range(25)) + "\n"
        parsed = parse_file(body.encode(), "many.csv")
        assert len(parsed.sample_data) == 10
        assert parsed.row_count == 25


class TestParseJSON:
    """JSON arrays, single objects and JSON Lines."""

    def test_array_with_ragged_keys(self):
        buffer = json.dumps([{"a": 1}, {"a": 2, "b": "x"}]).encode()
        parsed = parse_file(buffer, "rows.json")

        assert parsed.column_names == ["a", "b"]
        assert parsed.rows[0] == {"a": 1, "b": None}
        assert parsed.columns[1].is_nullable is True

    def test_single_object(self):
        parsed = parse_file(b'{"id": 7}', "one.json")
        assert parsed.rows == [{"id": 7}]

    def test_json_lines(self):
        parsed = parse_file(b'{"id": 1}\n{"id": 2}\n', "rows.json")
        assert parsed.row_count == 2

    def test_malformed_json(self):
        with pytest.raises(ParseError) as exc_info:
            parse_file(b"{not json", "bad.json")
        assert exc_info.value.file_type == "json"

    def test_non_object_rows_rejected(self):
        with pytest.raises(ParseError):
            parse_file(b"[1, 2, 3]", "numbers.json")


class TestParseExcel:
    """Excel files via pandas and openpyxl."""

    def test_xlsx(self):
        buffer = io.BytesIO()
        pd.DataFrame({"id": [1, 2], "city": ["Oslo", "Lima"]}).to_excel(buffer, index=False)

        parsed = parse_file(buffer.getvalue(), "cities.xlsx")

        assert parsed.row_count == 2
        assert parsed.rows[0] == {"id": 1, "city": "Oslo"}
        assert parsed.columns[0].data_type == DataType.INTEGER

    def test_corrupt_workbook(self):
        with pytest.raises(ParseError):
            parse_file(b"not a workbook", "broken.xlsx")


class TestUnsupportedFormats:

    def test_parquet_not_supported_yet(self):
        with pytest.raises(UnsupportedFormatError, match="Parquet"):
            parse_file(b"PAR1", "data.parquet")

    def test_unknown_extension(self):
        with pytest.raises(UnsupportedFormatError) as exc_info:
            parse_file(b"", "notes.txt")
        assert exc_info.value.extension == "txt"

    def test_no_extension(self):
        with pytest.raises(UnsupportedFormatError):
            parse_file(b"a,b", "README")


class TestMetadata:

    def test_csv_metadata(self, people_csv):
        meta = get_file_metadata(people_csv, "people.csv")
        assert meta.row_count == 3
        assert meta.columns == ["name", "age"]

    def test_json_metadata(self):
        meta = get_file_metadata(b'[{"a": 1}, {"b": 2}]', "x.json")
        assert meta.column_count == 2

    def test_union_columns_keeps_first_seen_order(self):
        assert union_columns([{"b": 1}, {"a": 1, "b": 2}, {"c": 3}]) == ["b", "a", "c"]


class TestFileConnector:
    """Loading through a file store."""

    def test_load_relative_to_base_dir(self, data_dir):
        connector = FileConnector(LocalFileStore(str(data_dir)))
        parsed = connector.load(FileSourceConfig(file_path="people.csv"))
        assert parsed.row_count == 3

    def test_file_type_override(self, data_dir):
        (data_dir / "export.dat").write_bytes(b"x\n1\n")
        connector = FileConnector(LocalFileStore(str(data_dir)))
        parsed = connector.load(FileSourceConfig(file_path="export.dat", file_type="csv"))
        assert parsed.rows == [{"x": "1"}]

    def test_missing_file(self, data_dir):
        connector = FileConnector(LocalFileStore(str(data_dir)))
        with pytest.raises(FileNotFoundError):
            connector.load(FileSourceConfig(file_path="nope.csv"))
