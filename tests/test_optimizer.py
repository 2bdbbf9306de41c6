# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Tests for the heuristic query optimizer."""

import pytest

from quarry.core.config import OptimizerConfig
from quarry.core.models import QueryPlan
from quarry.sql import (
    OptimizationContext,
    QueryOptimizer,
    QueryStatistics,
    analyze_query_performance,
    suggest_optimizations,
)
from quarry.sql.optimizer import normalize_query


class TestNormalize:

    def test_keywords_upper_cased_and_whitespace_collapsed(self):
        assert normalize_query("select  a\n from   t  where b = 1;") == "SELECT a FROM t WHERE b = 1"

    def test_quoted_text_untouched(self):
        query = "select * from t where note = 'select  from where'"
        assert normalize_query(query) == "SELECT * FROM t WHERE note = 'select  from where'"

    def test_quoted_identifiers_untouched(self):
        assert normalize_query('select "order" from t') == 'SELECT "order" FROM t'


class TestOptimize:
    """Plan annotation."""

    def test_large_table_gets_default_limit(self):
        plan = QueryOptimizer().optimize(
            "select id from orders", OptimizationContext(table_row_count=50000)
        )

        assert plan.optimized_query == "SELECT id FROM orders LIMIT 1000"
        assert plan.estimated_rows == 1000
        assert any("Large table" in w for w in plan.warnings)

    def test_existing_limit_respected(self):
        plan = QueryOptimizer().optimize(
            "select id from orders limit 5", OptimizationContext(table_row_count=50000)
        )
        assert plan.optimized_query == "SELECT id FROM orders LIMIT 5"
        assert plan.estimated_rows == 5

    def test_small_table_untouched(self):
        plan = QueryOptimizer().optimize("select id from t", OptimizationContext(table_row_count=10))
        assert "LIMIT" not in plan.optimized_query
        assert plan.estimated_rows == 10

    def test_filters_reduce_estimate(self):
        plan = QueryOptimizer().optimize(
            "select id from t where a = 1 and b = 2",
            OptimizationContext(table_row_count=1000),
        )
        assert plan.estimated_rows == int(1000 * 0.9 ** 2)

    def test_cost_components(self):
        plan = QueryOptimizer().optimize(
            "select a, count(*) from t join u on t.id = u.id group by a order by a"
        )
        assert plan.estimated_cost == pytest.approx(1.0 + 2.0 + 1.0 + 0.5)

    def test_index_discount(self):
        plan = QueryOptimizer().optimize(
            "select id from t where customer_id = 3",
            OptimizationContext(available_indexes=["customer_id"]),
        )
        assert plan.indexes == ["customer_id"]
        assert plan.estimated_cost == pytest.approx(0.5)

    def test_select_star_and_common_filter_warnings(self):
        plan = QueryOptimizer().optimize(
            "select * from t", OptimizationContext(common_filters=["tenant_id"])
        )
        assert any("SELECT *" in w for w in plan.warnings)
        assert any("tenant_id" in w for w in plan.warnings)

    def test_configurable_threshold(self):
        optimizer = QueryOptimizer(OptimizerConfig(large_table_threshold=10, default_limit=3))
        plan = optimizer.optimize("select a from t", OptimizationContext(table_row_count=11))
        assert plan.optimized_query.endswith("LIMIT 3")

    def test_sqlserver_top_counts_as_limit(self):
        plan = QueryOptimizer().optimize(
            "select top 5 a from t", OptimizationContext(table_row_count=50000)
        )
        assert "LIMIT" not in plan.optimized_query
        assert plan.estimated_rows == 5


class TestPerformanceAnalysis:

    @pytest.mark.parametrize("elapsed,band", [
        (50, "excellent"),
        (200, "good"),
        (1500, "fair"),
        (5000, "poor"),
    ])
    def test_bands(self, elapsed, band):
        plan = QueryPlan(optimized_query="q", estimated_rows=10, estimated_cost=1.0)
        analysis = analyze_query_performance(QueryStatistics(execution_time_ms=elapsed), plan)
        assert analysis.performance == band

    def test_slow_query_without_indexes(self):
        plan = QueryPlan(optimized_query="q", estimated_rows=10, estimated_cost=6.0)
        stats = QueryStatistics(execution_time_ms=3000, rows_returned=20000, rows_scanned=10_000_000)

        recommendations = analyze_query_performance(stats, plan).recommendations

        assert any("indexes" in r for r in recommendations)
        assert any("pagination" in r for r in recommendations)
        assert any("scans far more rows" in r for r in recommendations)
        assert any("complex" in r for r in recommendations)
        assert any("stale" in r for r in recommendations)


class TestSuggestions:

    def test_rules(self):
        suggestions = suggest_optimizations(
            "select * from a join b on a.x = b.x join c on b.y = c.y "
            "join d on c.z = d.z join e on d.w = e.w order by a.x"
        )
        assert any("SELECT *" in s for s in suggestions)
        assert any("no WHERE" in s for s in suggestions)
        assert any("more than 3 tables" in s for s in suggestions)
        assert any("ORDER BY without LIMIT" in s for s in suggestions)

    def test_leading_wildcard(self):
        suggestions = suggest_optimizations("select id from t where name like '%son'")
        assert any("leading wildcard" in s for s in suggestions)

    def test_clean_query(self):
        assert suggest_optimizations("select id from t where id = 1") == []
