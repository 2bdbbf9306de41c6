# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""SQL construction, dialect handling and heuristic optimization."""

from .builder import (
    AggregationConfig,
    JoinConfig,
    QueryBuilderConfig,
    ValidationResult,
    build_parameterized_query,
    build_sql_query,
    escape_identifier,
    escape_value,
    parse_sql_query,
    validate_query_config,
)
from .dataset_query import build_dataset_query
from .dialects import SQLDialect, detect_dialect, dialect_for_provider, transpile_sql
from .optimizer import (
    OptimizationContext,
    PerformanceAnalysis,
    QueryOptimizer,
    QueryStatistics,
    analyze_query_performance,
    suggest_optimizations,
)

__all__ = [
    "AggregationConfig",
    "JoinConfig",
    "OptimizationContext",
    "PerformanceAnalysis",
    "QueryBuilderConfig",
    "QueryOptimizer",
    "QueryStatistics",
    "SQLDialect",
    "ValidationResult",
    "analyze_query_performance",
    "build_dataset_query",
    "build_parameterized_query",
    "build_sql_query",
    "detect_dialect",
    "dialect_for_provider",
    "escape_identifier",
    "escape_value",
    "parse_sql_query",
    "suggest_optimizations",
    "transpile_sql",
    "validate_query_config",
]
