# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Heuristic query optimizer.

Nothing here is a cost-based planner. The optimizer normalizes the query
text, may append a default LIMIT for large tables, and annotates the query
with a rough row estimate, a relative cost and advisory warnings. Its
output never blocks execution.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from quarry.core.config import OptimizerConfig
from quarry.core.models import QueryPlan

logger = logging.getLogger(__name__)

KEYWORDS = (
    "select", "from", "where", "and", "or", "not", "in", "is", "null", "like",
    "between", "join", "inner", "left", "right", "full", "outer", "cross", "on",
    "group", "by", "having", "order", "asc", "desc", "limit", "offset", "as",
    "distinct", "union", "all", "case", "when", "then", "else", "end", "top",
    "fetch", "next", "rows", "only", "exists",
)

_KEYWORD_PATTERN = re.compile(r"\b(" + "|".join(KEYWORDS) + r")\b", re.IGNORECASE)

# Quoted segments the normalizer must leave alone: '...', "...", `...`, [...]
_QUOTED_PATTERN = re.compile(r"('(?:[^']|'')*'|\"[^\"]*\"|`[^`]*`|\[[^\]]*\])")

FILTER_DISCOUNT = 0.9
JOIN_COST = 2.0
GROUP_BY_COST = 1.0
ORDER_BY_COST = 0.5
INDEX_DISCOUNT = 0.5

MAX_RECOMMENDED_JOINS = 3


@dataclass
class OptimizationContext:
    """What the caller knows about the target table."""
    available_indexes: list[str] = field(default_factory=list)
    table_row_count: Optional[int] = None
    common_filters: list[str] = field(default_factory=list)


@dataclass
class QueryStatistics:
    """Measured execution facts for a query."""
    execution_time_ms: float
    rows_returned: int = 0
    rows_scanned: Optional[int] = None


@dataclass
class PerformanceAnalysis:
    performance: str  # excellent | good | fair | poor
    recommendations: list[str] = field(default_factory=list)


def _split_quoted(query: str) -> list[tuple[str, bool]]:
    """Split into (segment, is_quoted) pieces."""
    pieces = []
    last = 0
    for match in _QUOTED_PATTERN.finditer(query):
        if match.start() > last:
            pieces.append((query[last:match.start()], False))
        pieces.append((match.group(0), True))
        last = match.end()
    if last < len(query):
        pieces.append((query[last:], False))
    return pieces


def normalize_query(query: str) -> str:
    """Collapse whitespace and upper-case keywords outside quoted text."""
    out = []
    for text, quoted in _split_quoted(query.strip()):
        if quoted:
            out.append(text)
        else:
            text = re.sub(r"\s+", " ", text)
            out.append(_KEYWORD_PATTERN.sub(lambda m: m.group(1).upper(), text))
    return "".join(out).strip().rstrip(";").strip()


def _unquoted(query: str) -> str:
    """Query text with quoted literals and identifiers blanked out."""
    return "".join(" " if quoted else text for text, quoted in _split_quoted(query))


def _has_limit(bare: str) -> bool:
    return bool(re.search(r"\bLIMIT\s+\d+", bare, re.IGNORECASE)
                or re.search(r"\bTOP\s*\(?\s*\d+", bare, re.IGNORECASE)
                or re.search(r"\bFETCH\s+(NEXT|FIRST)\b", bare, re.IGNORECASE))


def _limit_value(bare: str) -> Optional[int]:
    for pattern in (r"\bLIMIT\s+(\d+)", r"\bTOP\s*\(?\s*(\d+)", r"\bFETCH\s+(?:NEXT|FIRST)\s+(\d+)"):
        match = re.search(pattern, bare, re.IGNORECASE)
        if match:
            return int(match.group(1))
    return None


class QueryOptimizer:
    """Annotates SQL with estimates and warnings."""

    def __init__(self, config: Optional[OptimizerConfig] = None):
        self.config = config or OptimizerConfig()

    def optimize(self, query: str, context: Optional[OptimizationContext] = None) -> QueryPlan:
        """
        Produce an advisory plan for a query.

        Args:
            query: SQL text
            context: Known indexes, table size and frequently used filters

        Returns:
            QueryPlan with the normalized (possibly limited) query
        """
        context = context or OptimizationContext()
        warnings: list[str] = []

        optimized = normalize_query(query)
        bare = _unquoted(optimized)
        upper = bare.upper()

        row_count = context.table_row_count
        if (
            row_count is not None
            and row_count > self.config.large_table_threshold
            and not _has_limit(bare)
        ):
            optimized = f"{optimized} LIMIT {self.config.default_limit}"
            bare = f"{bare} LIMIT {self.config.default_limit}"
            warnings.append(
                f"Large table ({row_count:,} rows) queried without a limit; "
                f"added LIMIT {self.config.default_limit}"
            )
            logger.warning(f"Injected default LIMIT {self.config.default_limit}")

        filter_count = len(re.findall(r"\bWHERE\b", upper)) + len(re.findall(r"\bAND\b", upper))
        base_rows = row_count if row_count is not None else self.config.default_row_estimate
        estimated_rows = int(base_rows * (FILTER_DISCOUNT ** filter_count))
        limit = _limit_value(bare)
        if limit is not None:
            estimated_rows = min(estimated_rows, limit)

        cost = 1.0
        cost += JOIN_COST * len(re.findall(r"\bJOIN\b", upper))
        if re.search(r"\bGROUP\s+BY\b", upper):
            cost += GROUP_BY_COST
        if re.search(r"\bORDER\s+BY\b", upper):
            cost += ORDER_BY_COST

        used_indexes = [
            index for index in context.available_indexes
            if re.search(rf"\b{re.escape(index)}\b", optimized, re.IGNORECASE)
        ]
        if used_indexes:
            cost *= INDEX_DISCOUNT

        for column in context.common_filters:
            if not re.search(rf"\b{re.escape(column)}\b", optimized, re.IGNORECASE):
                warnings.append(f"Consider filtering on '{column}', a commonly used filter column")

        if re.search(r"\bSELECT\s+\*", upper):
            warnings.append("SELECT * retrieves all columns; list only the columns you need")

        logger.debug(f"Optimized query: rows~{estimated_rows}, cost={cost}")
        return QueryPlan(
            optimized_query=optimized,
            estimated_rows=estimated_rows,
            estimated_cost=cost,
            indexes=used_indexes,
            warnings=warnings,
        )


def analyze_query_performance(statistics: QueryStatistics, plan: QueryPlan) -> PerformanceAnalysis:
    """Grade an executed query and suggest improvements."""
    elapsed = statistics.execution_time_ms
    if elapsed < 100:
        performance = "excellent"
    elif elapsed < 500:
        performance = "good"
    elif elapsed < 2000:
        performance = "fair"
    else:
        performance = "poor"

    recommendations = []
    if performance in ("fair", "poor") and not plan.indexes:
        recommendations.append("Add indexes on columns used in WHERE and JOIN clauses")
    if statistics.rows_returned > 10000:
        recommendations.append("Large result set; add pagination or a tighter filter")
    if statistics.rows_scanned and statistics.rows_returned:
        selectivity = statistics.rows_returned / statistics.rows_scanned
        if selectivity < 0.01:
            recommendations.append(
                "Query scans far more rows than it returns; an index on the filter columns would help"
            )
    if plan.estimated_cost > 5:
        recommendations.append("Query is complex; consider simplifying joins or pre-aggregating")
    if statistics.rows_returned > plan.estimated_rows * 10 and plan.estimated_rows > 0:
        recommendations.append("Returned rows far exceed the estimate; table statistics may be stale")

    return PerformanceAnalysis(performance=performance, recommendations=recommendations)


def suggest_optimizations(query: str) -> list[str]:
    """Static rule checks over query text. The query is never modified."""
    bare = _unquoted(normalize_query(query))
    upper = bare.upper()
    suggestions = []

    if re.search(r"\bSELECT\s+\*", upper):
        suggestions.append("Avoid SELECT *; specify only the columns you need")
    if not re.search(r"\bWHERE\b", upper):
        suggestions.append("Query has no WHERE clause and will read the whole table")
    if len(re.findall(r"\bJOIN\b", upper)) > MAX_RECOMMENDED_JOINS:
        suggestions.append(
            f"Query joins more than {MAX_RECOMMENDED_JOINS} tables; consider breaking it up"
        )
    if re.search(r"\bORDER\s+BY\b", upper) and not _has_limit(bare):
        suggestions.append("ORDER BY without LIMIT sorts the full result set")
    # Leading wildcards live inside quoted literals, so check the normalized text
    if re.search(r"\bLIKE\s+'%", normalize_query(query), re.IGNORECASE):
        suggestions.append("LIKE with a leading wildcard cannot use an index")

    return suggestions
