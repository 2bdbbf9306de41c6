# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""In-memory row processing shared by the file and API fetch paths.

Order is fixed: filter, project, order, offset, limit.

Rows from CSV files hold strings, so comparisons are tolerant of
representation: "30" equals 30, and ordering is numeric whenever both
sides parse as numbers.
"""

from dataclasses import dataclass
from datetime import date, datetime
from functools import cmp_to_key
from typing import Any, Optional

from quarry.catalog.file.parser import is_null, to_number
from quarry.core.models import (
    FetchOptions,
    FilterCondition,
    FilterOperator,
    OrderByClause,
    SortDirection,
)


@dataclass
class ProcessedRows:
    rows: list[dict[str, Any]]
    matched_count: int  # After filtering, before offset and limit


def values_equal(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if left == right:
        return True
    if isinstance(left, bool) or isinstance(right, bool):
        return str(left).lower() == str(right).lower()
    a, b = to_number(left), to_number(right)
    if a is not None and b is not None:
        return a == b
    return str(left) == str(right)


def compare_values(left: Any, right: Any) -> int:
    """Three-way comparison; numeric when both sides are numbers."""
    a, b = to_number(left), to_number(right)
    if a is not None and b is not None:
        return (a > b) - (a < b)
    if isinstance(left, (datetime, date)) and isinstance(right, (datetime, date)):
        if type(left) is type(right):
            return (left > right) - (left < right)
    x, y = str(left), str(right)
    return (x > y) - (x < y)


def _text(value: Any) -> str:
    return "" if value is None else str(value).lower()


def matches(row: dict[str, Any], condition: FilterCondition) -> bool:
    """Evaluate one filter condition against a row."""
    value = row.get(condition.column)
    target = condition.value
    op = condition.operator

    if op == FilterOperator.IS_NULL:
        return is_null(value)
    if op == FilterOperator.IS_NOT_NULL:
        return not is_null(value)
    if op == FilterOperator.EQUALS:
        return values_equal(value, target)
    if op == FilterOperator.NOT_EQUALS:
        return not values_equal(value, target)
    if op == FilterOperator.CONTAINS:
        return value is not None and _text(target) in _text(value)
    if op == FilterOperator.STARTS_WITH:
        return value is not None and _text(value).startswith(_text(target))
    if op == FilterOperator.ENDS_WITH:
        return value is not None and _text(value).endswith(_text(target))
    if op == FilterOperator.IN:
        return any(values_equal(value, t) for t in target)
    if op == FilterOperator.NOT_IN:
        return not any(values_equal(value, t) for t in target)

    # Ordering comparisons never match missing values
    if is_null(value):
        return False
    if op == FilterOperator.GREATER_THAN:
        return compare_values(value, target) > 0
    if op == FilterOperator.LESS_THAN:
        return compare_values(value, target) < 0
    if op == FilterOperator.GREATER_THAN_OR_EQUAL:
        return compare_values(value, target) >= 0
    if op == FilterOperator.LESS_THAN_OR_EQUAL:
        return compare_values(value, target) <= 0
    if op == FilterOperator.BETWEEN:
        low, high = target
        return compare_values(value, low) >= 0 and compare_values(value, high) <= 0
    return True


def apply_filters(rows: list[dict[str, Any]], filters: list[FilterCondition]) -> list[dict[str, Any]]:
    """Keep rows matching every condition."""
    if not filters:
        return list(rows)
    for condition in filters:
        condition.validate()
    return [row for row in rows if all(matches(row, c) for c in filters)]


def project_columns(rows: list[dict[str, Any]], columns: list[str]) -> list[dict[str, Any]]:
    """Restrict rows to the named columns that are present."""
    if not columns:
        return rows
    return [{c: row[c] for c in columns if c in row} for row in rows]


def apply_order_by(rows: list[dict[str, Any]], order_by: list[OrderByClause]) -> list[dict[str, Any]]:
    """Stable multi-key sort; missing values sort last in either direction."""
    if not order_by:
        return rows

    def compare(a: dict, b: dict) -> int:
        for clause in order_by:
            x, y = a.get(clause.column), b.get(clause.column)
            x_null, y_null = is_null(x), is_null(y)
            if x_null or y_null:
                if x_null and y_null:
                    continue
                return 1 if x_null else -1
            result = compare_values(x, y)
            if result:
                return -result if clause.direction == SortDirection.DESC else result
        return 0

    return sorted(rows, key=cmp_to_key(compare))


def paginate(rows: list[dict[str, Any]], offset: Optional[int], limit: Optional[int]) -> list[dict[str, Any]]:
    start = offset or 0
    if limit is None:
        return rows[start:]
    return rows[start:start + limit]


def process_rows(rows: list[dict[str, Any]], options: FetchOptions) -> ProcessedRows:
    """Run the full pipeline and report how many rows matched the filters."""
    options.validate()
    filtered = apply_filters(rows, options.filters)
    projected = project_columns(filtered, options.columns)
    ordered = apply_order_by(projected, options.order_by)
    return ProcessedRows(
        rows=paginate(ordered, options.offset, options.limit),
        matched_count=len(filtered),
    )
