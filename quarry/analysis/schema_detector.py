# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Schema detection over parsed row sets.

Finds primary key candidates, value-overlap relationships between columns
and coarse data quality metrics. Relationship detection compares every
column pair against every row, so it is bounded: it is skipped above a
column limit and runs on a row sample.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Hashable, Optional

from quarry.catalog.file.parser import is_date_value, to_number, is_null
from quarry.core.config import SchemaDetectionConfig
from quarry.core.models import ColumnDefinition, DataType, NUMERIC_TYPES, ParsedFileData

logger = logging.getLogger(__name__)

PRIMARY_KEY_MIN_UNIQUENESS = 0.95
PRIMARY_KEY_MIN_COMPLETENESS = 0.95
PRIMARY_KEY_MIN_SCORE = 0.9
PRIMARY_KEY_NAME_PATTERNS = ("id", "_id", "pk", "key", "uuid", "guid")

RELATIONSHIP_MIN_OVERLAP = 0.8


@dataclass
class SchemaRelationship:
    """Values of from_column largely appear in to_column."""
    from_column: str
    to_column: str
    type: str  # one-to-one | one-to-many | many-to-many
    confidence: float

    def to_dict(self) -> dict:
        return {
            "from_column": self.from_column,
            "to_column": self.to_column,
            "type": self.type,
            "confidence": round(self.confidence, 4),
        }


@dataclass
class DataQualityMetrics:
    """Cross-column averages, each a fraction between 0 and 1."""
    completeness: float
    uniqueness: float
    validity: float
    consistency: float

    def to_dict(self) -> dict:
        return {
            "completeness": self.completeness,
            "uniqueness": self.uniqueness,
            "validity": self.validity,
            "consistency": self.consistency,
        }


@dataclass
class DetectedSchema:
    columns: list[ColumnDefinition]
    primary_keys: list[str] = field(default_factory=list)
    relationships: list[SchemaRelationship] = field(default_factory=list)
    data_quality: Optional[DataQualityMetrics] = None
    relationships_skipped: bool = False


def hashable(value: Any) -> Hashable:
    """Canonical hashable form of a cell; nested JSON compares by content."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    return value


def _column_values(rows: list[dict[str, Any]], name: str) -> list[Any]:
    return [row.get(name) for row in rows]


def _present_set(values: list[Any]) -> set:
    return {hashable(v) for v in values if not is_null(v)}


def detect_primary_keys(columns: list[ColumnDefinition], rows: list[dict[str, Any]]) -> list[str]:
    """
    Rank columns that could serve as a primary key.

    A candidate must be at least 95% unique and 95% complete over all rows.
    Its score is uniqueness * completeness * type score * name score, and
    only candidates scoring above 0.9 are returned, best first.
    """
    if not rows:
        return [c.column_name for c in columns if c.is_primary_key]

    total = len(rows)
    candidates: list[tuple[str, float]] = []

    for column in columns:
        if column.is_primary_key:
            candidates.append((column.column_name, 1.0))
            continue

        values = _column_values(rows, column.column_name)
        uniqueness = len(_present_set(values)) / total
        if uniqueness < PRIMARY_KEY_MIN_UNIQUENESS:
            continue

        completeness = sum(1 for v in values if not is_null(v)) / total
        if completeness < PRIMARY_KEY_MIN_COMPLETENESS:
            continue

        type_score = 1.0 if column.data_type in (DataType.INTEGER, DataType.STRING) else 0.5
        name = column.column_name.lower()
        name_score = 1.0 if any(p in name for p in PRIMARY_KEY_NAME_PATTERNS) else 0.5

        candidates.append((column.column_name, uniqueness * completeness * type_score * name_score))

    candidates.sort(key=lambda c: c[1], reverse=True)
    return [name for name, score in candidates if score > PRIMARY_KEY_MIN_SCORE]


def _relationship_type(from_values: list[Any], to_values: list[Any]) -> str:
    def is_unique(values):
        present = [hashable(v) for v in values if not is_null(v)]
        return len(present) == len(set(present))

    from_unique = is_unique(from_values)
    to_unique = is_unique(to_values)
    if from_unique and to_unique:
        return "one-to-one"
    if to_unique:
        return "one-to-many"
    return "many-to-many"


def detect_relationships(
    columns: list[ColumnDefinition],
    rows: list[dict[str, Any]],
    config: Optional[SchemaDetectionConfig] = None,
) -> list[SchemaRelationship]:
    """
    Find column pairs whose value sets overlap by more than 80%.

    Both directions of every pair are tested; overlap is the share of the
    source column's distinct values found in the target column.

    Skipped entirely above config.relationship_max_columns columns, and
    computed on the first config.relationship_sample_rows rows.
    """
    config = config or SchemaDetectionConfig()
    if len(columns) > config.relationship_max_columns:
        logger.warning(
            f"Skipping relationship detection: {len(columns)} columns exceeds "
            f"limit of {config.relationship_max_columns}"
        )
        return []

    if len(rows) > config.relationship_sample_rows:
        logger.warning(
            f"Relationship detection sampling first {config.relationship_sample_rows} "
            f"of {len(rows)} rows"
        )
        rows = rows[:config.relationship_sample_rows]

    values = {c.column_name: _column_values(rows, c.column_name) for c in columns}
    value_sets = {name: _present_set(vals) for name, vals in values.items()}

    relationships = []
    for i, first in enumerate(columns):
        for second in columns[i + 1:]:
            for source, target in (
                (first.column_name, second.column_name),
                (second.column_name, first.column_name),
            ):
                source_set = value_sets[source]
                overlap = len(source_set & value_sets[target]) / max(len(source_set), 1)
                if overlap > RELATIONSHIP_MIN_OVERLAP:
                    relationships.append(SchemaRelationship(
                        from_column=source,
                        to_column=target,
                        type=_relationship_type(values[source], values[target]),
                        confidence=overlap,
                    ))
    return relationships


def _is_valid(value: Any, data_type: str) -> bool:
    if is_null(value):
        return True
    if data_type in NUMERIC_TYPES:
        return to_number(value) is not None
    if data_type == DataType.DATE:
        return is_date_value(value)
    return True


def calculate_data_quality(
    columns: list[ColumnDefinition],
    rows: list[dict[str, Any]],
) -> DataQualityMetrics:
    """Average completeness, uniqueness and validity across columns."""
    if not columns or not rows:
        return DataQualityMetrics(completeness=0.0, uniqueness=0.0, validity=0.0, consistency=0.0)

    total = len(rows)
    completeness = uniqueness = validity = 0.0
    for column in columns:
        values = _column_values(rows, column.column_name)
        present = sum(1 for v in values if not is_null(v))
        completeness += present / total
        uniqueness += len(_present_set(values)) / max(present, 1)
        validity += sum(1 for v in values if _is_valid(v, column.data_type)) / total

    n = len(columns)
    return DataQualityMetrics(
        completeness=completeness / n,
        uniqueness=uniqueness / n,
        validity=validity / n,
        consistency=(completeness + uniqueness + validity) / (3 * n),
    )


def detect_schema(
    parsed: ParsedFileData,
    config: Optional[SchemaDetectionConfig] = None,
) -> DetectedSchema:
    """
    Detect primary keys, relationships and quality for a parsed file.

    Returns new column definitions with is_primary_key set; the input
    columns are left untouched.
    """
    config = config or SchemaDetectionConfig()
    rows = parsed.rows
    primary_keys = detect_primary_keys(parsed.columns, rows)
    skipped = len(parsed.columns) > config.relationship_max_columns
    relationships = detect_relationships(parsed.columns, rows, config)
    quality = calculate_data_quality(parsed.columns, rows)

    columns = [
        replace(c, is_primary_key=c.column_name in primary_keys, sample_values=list(c.sample_values))
        for c in parsed.columns
    ]
    logger.debug(
        f"Detected schema: {len(primary_keys)} primary keys, "
        f"{len(relationships)} relationships"
    )
    return DetectedSchema(
        columns=columns,
        primary_keys=primary_keys,
        relationships=relationships,
        data_quality=quality,
        relationships_skipped=skipped,
    )


_DESCRIPTION_RULES = (
    (("email",), "Email address"),
    (("phone",), "Phone number"),
    (("date", "time"), "Date or timestamp"),
    (("amount", "price", "cost"), "Monetary amount"),
    (("name",), "Name"),
    (("id",), "Identifier"),
    (("status",), "Status value"),
    (("description",), "Description or notes"),
)


def _first_value(rows: list[dict[str, Any]], column: str) -> Any:
    for row in rows:
        value = row.get(column)
        if value is not None and value != "":
            return value
    return None


def suggest_column_descriptions(
    columns: list[ColumnDefinition],
    rows: Optional[list[dict[str, Any]]] = None,
) -> dict[str, str]:
    """
    Suggest a human description for each column from its name.

    Columns no name rule recognises are described by type, with the first
    non-null value from rows as an example when rows are given.
    """
    suggestions = {}
    for column in columns:
        name = column.column_name.lower()
        for patterns, text in _DESCRIPTION_RULES:
            if any(p in name for p in patterns):
                suggestions[column.column_name] = text
                break
        else:
            text = f"{DataType(column.data_type).value} column"
            sample = _first_value(rows or [], column.column_name)
            suggestions[column.column_name] = text if sample is None else f"{text} (e.g. {sample})"
    return suggestions
