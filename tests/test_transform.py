# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Tests for in-memory filtering, projection, ordering and pagination."""

import pytest

from quarry.core.errors import ValidationError
from quarry.core.models import FetchOptions, FilterCondition, OrderByClause
from quarry.transform import (
    apply_filters,
    apply_order_by,
    compare_values,
    paginate,
    process_rows,
    project_columns,
    values_equal,
)


class TestComparisons:

    def test_string_and_number_equal(self):
        assert values_equal("30", 30)
        assert values_equal(2.0, "2")
        assert not values_equal("30", 31)

    def test_none_only_equals_none(self):
        assert values_equal(None, None)
        assert not values_equal(None, "")

    def test_booleans_compare_by_text(self):
        assert values_equal(True, "true")

    def test_numeric_ordering_for_numeric_strings(self):
        assert compare_values("9", "10") < 0
        assert compare_values("b", "a") > 0


class TestFilters:
    """Each operator against a small row set."""

    ROWS = [
        {"name": "Alice", "age": "30", "city": "Oslo"},
        {"name": "bob", "age": "", "city": "Lima"},
        {"name": "Carol", "age": "25", "city": None},
    ]

    def _names(self, *conditions):
        return [r["name"] for r in apply_filters(self.ROWS, list(conditions))]

    def test_equals_across_types(self):
        assert self._names(FilterCondition("age", "equals", 30)) == ["Alice"]

    def test_text_operators_are_case_insensitive(self):
        assert self._names(FilterCondition("name", "contains", "O")) == ["bob", "Carol"]
        assert self._names(FilterCondition("name", "startsWith", "a")) == ["Alice"]
        assert self._names(FilterCondition("name", "endsWith", "OL")) == ["Carol"]

    def test_ordering_comparisons_skip_missing(self):
        assert self._names(FilterCondition("age", "lessThan", 100)) == ["Alice", "Carol"]
        assert self._names(FilterCondition("age", "greaterThanOrEqual", 30)) == ["Alice"]

    def test_between_inclusive(self):
        assert self._names(FilterCondition("age", "between", [25, 30])) == ["Alice", "Carol"]

    def test_in_and_not_in(self):
        assert self._names(FilterCondition("city", "in", ["Oslo", "Lima"])) == ["Alice", "bob"]
        assert self._names(FilterCondition("city", "notIn", ["Oslo"])) == ["bob", "Carol"]

    def test_null_checks(self):
        assert self._names(FilterCondition("age", "isNull")) == ["bob"]
        assert self._names(FilterCondition("city", "isNotNull")) == ["Alice", "bob"]

    def test_conditions_are_and_ed(self):
        names = self._names(
            FilterCondition("age", "isNotNull"),
            FilterCondition("city", "equals", "Oslo"),
        )
        assert names == ["Alice"]

    def test_malformed_between_rejected(self):
        with pytest.raises(ValidationError):
            apply_filters(self.ROWS, [FilterCondition("age", "between", 5)])

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValidationError, match="Unsupported operator"):
            FilterCondition("age", "like", 5)


class TestOrderingAndPaging:

    def test_multi_key_sort(self):
        rows = [{"g": "b", "n": 1}, {"g": "a", "n": 2}, {"g": "a", "n": 1}]
        ordered = apply_order_by(rows, [OrderByClause("g"), OrderByClause("n", "DESC")])
        assert ordered == [{"g": "a", "n": 2}, {"g": "a", "n": 1}, {"g": "b", "n": 1}]

    def test_missing_values_sort_last_both_ways(self):
        rows = [{"n": None}, {"n": 2}, {"n": 1}]
        assert [r["n"] for r in apply_order_by(rows, [OrderByClause("n")])] == [1, 2, None]
        assert [r["n"] for r in apply_order_by(rows, [OrderByClause("n", "DESC")])] == [2, 1, None]

    def test_project_keeps_present_columns(self):
        assert project_columns([{"a": 1, "b": 2}], ["b", "zzz"]) == [{"b": 2}]

    def test_paginate(self):
        rows = list(range(10))
        assert paginate(rows, 2, 3) == [2, 3, 4]
        assert paginate(rows, None, None) == rows
        assert paginate(rows, 8, 5) == [8, 9]


class TestProcessRows:
    """The full pipeline over twenty sales rows."""

    def test_filter_order_offset_limit(self, sales_rows):
        options = FetchOptions(
            filters=[FilterCondition("region", "equals", "West")],
            order_by=[OrderByClause("amount", "DESC")],
            offset=1,
            limit=2,
        )

        result = process_rows(sales_rows, options)

        assert result.matched_count == 5
        assert [r["id"] for r in result.rows] == [16, 12]

    def test_contains_filter_then_third_to_fifth(self, sales_rows):
        """North and South rows, ranked by amount, third through fifth."""
        options = FetchOptions(
            filters=[FilterCondition("region", "contains", "th")],
            order_by=[OrderByClause("amount", "DESC")],
            offset=2,
            limit=3,
        )

        result = process_rows(sales_rows, options)

        assert result.matched_count == 10
        assert [r["id"] for r in result.rows] == [14, 13, 10]

    def test_projection_happens_after_filtering(self, sales_rows):
        options = FetchOptions(
            columns=["id"],
            filters=[FilterCondition("amount", "greaterThan", 180)],
        )
        result = process_rows(sales_rows, options)
        assert result.rows == [{"id": 19}, {"id": 20}]

    def test_negative_offset_rejected(self, sales_rows):
        with pytest.raises(ValidationError):
            process_rows(sales_rows, FetchOptions(offset=-1))
