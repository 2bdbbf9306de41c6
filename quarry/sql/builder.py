# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Dialect-aware SQL construction from a structured query description.

Two renderings share one clause builder:

- build_parameterized_query() emits named binds (:p0, :p1, ...) and is what
  the engine executes.
- build_sql_query() inlines escaped literals. It exists for display and
  for callers that need a single self-contained string. Escaping is not a
  substitute for binds, so do not execute its output with untrusted input.

Identifiers can never be bound, so both paths quote them per dialect.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Union

import sqlglot
from sqlglot import expressions as exp
from sqlglot.errors import SqlglotError

from quarry.core.errors import ValidationError
from quarry.core.models import FilterCondition, FilterOperator, OrderByClause
from quarry.sql.dialects import SQLDialect, to_sqlglot

logger = logging.getLogger(__name__)

JOIN_TYPES = ("INNER", "LEFT", "RIGHT", "FULL")
AGGREGATE_FUNCTIONS = ("SUM", "COUNT", "AVG", "MIN", "MAX", "DISTINCT")

PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][\w]*(\.[A-Za-z_][\w]*)*$")

DialectLike = Union[SQLDialect, str]


@dataclass
class JoinConfig:
    table: str
    left_key: str
    right_key: str
    type: str = "INNER"

    def __post_init__(self):
        self.type = self.type.upper()


@dataclass
class AggregationConfig:
    column: str
    function: str
    alias: Optional[str] = None

    def __post_init__(self):
        self.function = self.function.upper()


@dataclass
class QueryBuilderConfig:
    """Structured description of a SELECT statement."""
    from_table: str
    select: list[str] = field(default_factory=list)
    joins: list[JoinConfig] = field(default_factory=list)
    where: list[FilterCondition] = field(default_factory=list)
    group_by: list[str] = field(default_factory=list)
    having: list[FilterCondition] = field(default_factory=list)
    order_by: list[OrderByClause] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None
    aggregations: list[AggregationConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "QueryBuilderConfig":
        """Build from a mapping; accepts the camelCase keys UI callers send."""
        return cls(
            from_table=data.get("from_table", data.get("from", "")),
            select=list(data.get("select") or []),
            joins=[
                JoinConfig(
                    table=j.get("table", ""),
                    left_key=j.get("left_key", j.get("leftKey", "")),
                    right_key=j.get("right_key", j.get("rightKey", "")),
                    type=j.get("type", "INNER"),
                )
                for j in data.get("joins") or []
            ],
            where=[FilterCondition.from_dict(f) for f in data.get("where") or []],
            group_by=list(data.get("group_by", data.get("groupBy")) or []),
            having=[FilterCondition.from_dict(f) for f in data.get("having") or []],
            order_by=[
                OrderByClause.from_dict(o)
                for o in data.get("order_by", data.get("orderBy")) or []
            ],
            limit=data.get("limit"),
            offset=data.get("offset"),
            aggregations=[
                AggregationConfig(column=a["column"], function=a["function"], alias=a.get("alias"))
                for a in data.get("aggregations") or []
            ],
        )


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def _dialect(dialect: DialectLike) -> SQLDialect:
    try:
        return SQLDialect(dialect)
    except ValueError:
        raise ValidationError(f"Unsupported SQL dialect: {dialect}")


def _quote_part(part: str, dialect: SQLDialect) -> str:
    if dialect == SQLDialect.MYSQL:
        return f"`{part}`"
    if dialect == SQLDialect.SQLSERVER:
        return f"[{part}]"
    return f'"{part}"'


def escape_identifier(identifier: str, dialect: DialectLike = SQLDialect.POSTGRESQL) -> str:
    """Quote a table or column name, splitting schema.table on dots.

    Existing quote characters are stripped first so they cannot break out
    of the quoting.
    """
    dialect = _dialect(dialect)
    cleaned = re.sub(r'["`\[\]]', "", identifier)
    return ".".join(_quote_part(part, dialect) for part in cleaned.split("."))


def escape_sql_string(value: str) -> str:
    """Double single quotes and backslashes."""
    return value.replace("'", "''").replace("\\", "\\\\")


def escape_value(value: Any, dialect: DialectLike = SQLDialect.POSTGRESQL) -> str:
    """Render a Python value as an SQL literal."""
    dialect = _dialect(dialect)
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        if dialect == SQLDialect.SQLSERVER:
            return "1" if value else "0"
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, Decimal)):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"Cannot render non-finite number {value} as SQL")
        return repr(value)
    if isinstance(value, (datetime, date)):
        return f"'{value.isoformat()}'"
    return f"'{escape_sql_string(str(value))}'"


class _Renderer:
    """Turns operand values into SQL text, inline or as named binds."""

    def __init__(self, dialect: SQLDialect, parameterized: bool):
        self.dialect = dialect
        self.parameterized = parameterized
        self.params: dict[str, Any] = {}

    def value(self, value: Any) -> str:
        if not self.parameterized:
            return escape_value(value, self.dialect)
        if value is None:
            return "NULL"
        name = f"p{len(self.params)}"
        self.params[name] = value
        return f":{name}"

    def pattern(self, value: Any, prefix: str, suffix: str) -> str:
        text = "" if value is None else str(value)
        if not self.parameterized:
            return f"'{prefix}{escape_sql_string(text)}{suffix}'"
        return self.value(f"{prefix}{text}{suffix}")


def _build_condition(condition: FilterCondition, renderer: _Renderer) -> str:
    condition.validate()
    column = escape_identifier(condition.column, renderer.dialect)
    op = condition.operator
    value = condition.value

    if op == FilterOperator.EQUALS:
        return f"{column} = {renderer.value(value)}"
    if op == FilterOperator.NOT_EQUALS:
        return f"{column} != {renderer.value(value)}"
    if op == FilterOperator.CONTAINS:
        return f"{column} LIKE {renderer.pattern(value, '%', '%')}"
    if op == FilterOperator.STARTS_WITH:
        return f"{column} LIKE {renderer.pattern(value, '', '%')}"
    if op == FilterOperator.ENDS_WITH:
        return f"{column} LIKE {renderer.pattern(value, '%', '')}"
    if op == FilterOperator.GREATER_THAN:
        return f"{column} > {renderer.value(value)}"
    if op == FilterOperator.LESS_THAN:
        return f"{column} < {renderer.value(value)}"
    if op == FilterOperator.GREATER_THAN_OR_EQUAL:
        return f"{column} >= {renderer.value(value)}"
    if op == FilterOperator.LESS_THAN_OR_EQUAL:
        return f"{column} <= {renderer.value(value)}"
    if op == FilterOperator.BETWEEN:
        return f"{column} BETWEEN {renderer.value(value[0])} AND {renderer.value(value[1])}"
    if op == FilterOperator.IN:
        return f"{column} IN ({', '.join(renderer.value(v) for v in value)})"
    if op == FilterOperator.NOT_IN:
        return f"{column} NOT IN ({', '.join(renderer.value(v) for v in value)})"
    if op == FilterOperator.IS_NULL:
        return f"{column} IS NULL"
    if op == FilterOperator.IS_NOT_NULL:
        return f"{column} IS NOT NULL"
    raise ValidationError(f"Unsupported operator: {op}")


def _join_conditions(conditions: list[FilterCondition], renderer: _Renderer) -> str:
    parts = []
    for i, condition in enumerate(conditions):
        clause = _build_condition(condition, renderer)
        if i > 0:
            parts.append(f"{condition.logical_operator or 'AND'} {clause}")
        else:
            parts.append(clause)
    return " ".join(parts)


def _select_item(item: str, dialect: SQLDialect) -> str:
    # Expressions and stars pass through; bare names are quoted
    if PLAIN_IDENTIFIER.match(item.strip()):
        return escape_identifier(item.strip(), dialect)
    return item


def _aggregation(agg: AggregationConfig, dialect: SQLDialect) -> str:
    if agg.function not in AGGREGATE_FUNCTIONS:
        raise ValidationError(f"Unsupported aggregate function: {agg.function}")
    column = "*" if agg.column == "*" else escape_identifier(agg.column, dialect)
    if agg.function == "DISTINCT":
        rendered = f"COUNT(DISTINCT {column})"
    else:
        rendered = f"{agg.function}({column})"
    if agg.alias:
        rendered += f" AS {escape_identifier(agg.alias, dialect)}"
    return rendered


def _pagination(config: QueryBuilderConfig, dialect: SQLDialect, has_order: bool) -> str:
    limit, offset = config.limit, config.offset
    if limit is None and not offset:
        return ""
    if dialect == SQLDialect.SQLSERVER:
        # OFFSET ... FETCH is only valid after ORDER BY
        prefix = "" if has_order else " ORDER BY (SELECT NULL)"
        clause = f"{prefix} OFFSET {offset or 0} ROWS"
        if limit is not None:
            clause += f" FETCH NEXT {limit} ROWS ONLY"
        return clause
    clause = ""
    if limit is not None:
        clause += f" LIMIT {limit}"
    if offset:
        clause += f" OFFSET {offset}"
    return clause


def _build(config: QueryBuilderConfig, renderer: _Renderer) -> str:
    dialect = renderer.dialect
    if not config.from_table or not config.from_table.strip():
        raise ValidationError("FROM table is required")
    if config.limit is not None and config.limit < 0:
        raise ValidationError("LIMIT must be non-negative")
    if config.offset is not None and config.offset < 0:
        raise ValidationError("OFFSET must be non-negative")

    items = [_select_item(s, dialect) for s in config.select]
    items += [_aggregation(a, dialect) for a in config.aggregations]
    sql = f"SELECT {', '.join(items) if items else '*'}"
    sql += f" FROM {escape_identifier(config.from_table, dialect)}"

    for join in config.joins:
        if join.type not in JOIN_TYPES:
            raise ValidationError(f"Unsupported join type: {join.type}")
        sql += f" {join.type} JOIN {escape_identifier(join.table, dialect)}"
        sql += (
            f" ON {escape_identifier(join.left_key, dialect)}"
            f" = {escape_identifier(join.right_key, dialect)}"
        )

    if config.where:
        sql += f" WHERE {_join_conditions(config.where, renderer)}"

    if config.group_by:
        sql += f" GROUP BY {', '.join(escape_identifier(c, dialect) for c in config.group_by)}"

    if config.having:
        sql += f" HAVING {_join_conditions(config.having, renderer)}"

    if config.order_by:
        order = ", ".join(
            f"{escape_identifier(o.column, dialect)} {o.direction.value}" for o in config.order_by
        )
        sql += f" ORDER BY {order}"

    sql += _pagination(config, dialect, bool(config.order_by))
    return sql


def build_sql_query(config: QueryBuilderConfig, dialect: DialectLike = SQLDialect.POSTGRESQL) -> str:
    """
    Build an SQL string with escaped literals inlined.

    Args:
        config: Query description
        dialect: postgresql, mysql or sqlserver

    Returns:
        SQL text

    Raises:
        ValidationError: If a filter operand has the wrong shape or a
            required part of the query is missing
    """
    sql = _build(config, _Renderer(_dialect(dialect), parameterized=False))
    logger.debug(f"Built SQL: {sql}")
    return sql


def build_parameterized_query(
    config: QueryBuilderConfig,
    dialect: DialectLike = SQLDialect.POSTGRESQL,
) -> tuple[str, dict[str, Any]]:
    """
    Build an SQL string with named bind parameters.

    Returns:
        (sql, params) suitable for sqlalchemy.text(sql) with params
    """
    renderer = _Renderer(_dialect(dialect), parameterized=True)
    sql = _build(config, renderer)
    logger.debug(f"Built parameterized SQL: {sql} params={list(renderer.params)}")
    return sql, renderer.params


def validate_query_config(config: QueryBuilderConfig) -> ValidationResult:
    """Check a query description without building it."""
    errors = []
    if not config.from_table or not config.from_table.strip():
        errors.append("FROM table is required")
    if not config.select and not config.aggregations:
        errors.append("At least one SELECT column is required")

    for i, join in enumerate(config.joins, start=1):
        if not join.table or not join.table.strip():
            errors.append(f"Join {i}: Table is required")
        if not join.left_key or not join.left_key.strip():
            errors.append(f"Join {i}: Left key is required")
        if not join.right_key or not join.right_key.strip():
            errors.append(f"Join {i}: Right key is required")
        if join.type not in JOIN_TYPES:
            errors.append(f"Join {i}: Unsupported join type {join.type}")

    for clause, conditions in (("WHERE", config.where), ("HAVING", config.having)):
        for i, condition in enumerate(conditions, start=1):
            try:
                condition.validate()
            except ValidationError as e:
                errors.append(f"{clause} condition {i}: {e}")

    if config.limit is not None and config.limit < 0:
        errors.append("LIMIT must be non-negative")
    if config.offset is not None and config.offset < 0:
        errors.append("OFFSET must be non-negative")

    return ValidationResult(valid=not errors, errors=errors)


# ---------------------------------------------------------------------------
# Reverse engineering raw SQL into a QueryBuilderConfig (best effort)
# ---------------------------------------------------------------------------

_COMPARISONS = {
    exp.EQ: FilterOperator.EQUALS,
    exp.NEQ: FilterOperator.NOT_EQUALS,
    exp.GT: FilterOperator.GREATER_THAN,
    exp.LT: FilterOperator.LESS_THAN,
    exp.GTE: FilterOperator.GREATER_THAN_OR_EQUAL,
    exp.LTE: FilterOperator.LESS_THAN_OR_EQUAL,
}


def _own(tree: exp.Expression, kind) -> Optional[exp.Expression]:
    """First node of a type that belongs to this SELECT, not a subquery."""
    return next((n for n in tree.find_all(kind) if n.parent is tree), None)


def _column_name(node: exp.Expression) -> Optional[str]:
    if not isinstance(node, exp.Column):
        return None
    return f"{node.table}.{node.name}" if node.table else node.name


def _literal(node: exp.Expression) -> Any:
    if isinstance(node, exp.Neg) and isinstance(node.this, exp.Literal):
        return -_literal(node.this)
    if isinstance(node, exp.Boolean):
        return node.this
    if isinstance(node, exp.Null):
        return None
    if not isinstance(node, exp.Literal):
        raise ValueError("not a literal")
    if node.is_string:
        return node.this
    number = float(node.this)
    return int(number) if number.is_integer() and "." not in node.this else number


def _int_arg(node: Optional[exp.Expression], key: str) -> Optional[int]:
    if node is None:
        return None
    value = node.args.get(key)
    if isinstance(value, exp.Literal) and value.is_int:
        return int(value.this)
    return None


def _condition_from(node: exp.Expression) -> Optional[FilterCondition]:
    negated = isinstance(node, exp.Not)
    inner = node.this if negated else node
    if isinstance(inner, exp.Paren):
        inner = inner.this

    try:
        if type(inner) in _COMPARISONS and not negated:
            column = _column_name(inner.this)
            if column:
                return FilterCondition(column, _COMPARISONS[type(inner)], _literal(inner.expression))
        if isinstance(inner, exp.Like) and not negated:
            column = _column_name(inner.this)
            pattern = _literal(inner.expression)
            if column and isinstance(pattern, str):
                if pattern.startswith("%") and pattern.endswith("%") and len(pattern) > 1:
                    return FilterCondition(column, FilterOperator.CONTAINS, pattern[1:-1])
                if pattern.endswith("%"):
                    return FilterCondition(column, FilterOperator.STARTS_WITH, pattern[:-1])
                if pattern.startswith("%"):
                    return FilterCondition(column, FilterOperator.ENDS_WITH, pattern[1:])
        if isinstance(inner, exp.In):
            column = _column_name(inner.this)
            if column:
                values = [_literal(v) for v in inner.expressions]
                op = FilterOperator.NOT_IN if negated else FilterOperator.IN
                return FilterCondition(column, op, values)
        if isinstance(inner, exp.Between) and not negated:
            column = _column_name(inner.this)
            if column:
                low = _literal(inner.args["low"])
                high = _literal(inner.args["high"])
                return FilterCondition(column, FilterOperator.BETWEEN, [low, high])
        if isinstance(inner, exp.Is) and isinstance(inner.expression, exp.Null):
            column = _column_name(inner.this)
            if column:
                op = FilterOperator.IS_NOT_NULL if negated else FilterOperator.IS_NULL
                return FilterCondition(column, op)
    except (ValueError, KeyError):
        pass
    logger.debug(f"Cannot map WHERE condition to a filter: {node.sql()}")
    return None


def parse_sql_query(sql: str, dialect: Optional[DialectLike] = None) -> QueryBuilderConfig:
    """
    Recover a query description from raw SQL.

    Advisory only: simple AND-ed comparisons become filters, anything more
    complex in WHERE is dropped, and select items that are not plain
    columns are kept as SQL text.

    Raises:
        ValidationError: If the SQL cannot be parsed or is not a SELECT
    """
    read = to_sqlglot(_dialect(dialect)) if dialect else None
    try:
        tree = sqlglot.parse_one(sql, read=read)
    except SqlglotError as e:
        raise ValidationError(f"Could not parse SQL: {e}") from e
    if not isinstance(tree, exp.Select):
        raise ValidationError("Only SELECT statements can be parsed")

    select = []
    for item in tree.expressions:
        if isinstance(item, exp.Star):
            select.append("*")
        else:
            select.append(_column_name(item) or item.sql(dialect=read))

    from_node = _own(tree, exp.From)
    from_table = ""
    if from_node is not None and isinstance(from_node.this, exp.Table):
        table = from_node.this
        from_table = f"{table.db}.{table.name}" if table.db else table.name

    joins = []
    for join in (j for j in tree.find_all(exp.Join) if j.parent is tree):
        on = join.args.get("on")
        if not isinstance(join.this, exp.Table) or not isinstance(on, exp.EQ):
            continue
        joins.append(JoinConfig(
            table=join.this.name,
            left_key=_column_name(on.this) or on.this.sql(),
            right_key=_column_name(on.expression) or on.expression.sql(),
            type=(join.side or join.kind or "INNER"),
        ))

    where = []
    where_node = _own(tree, exp.Where)
    if where_node is not None:
        predicate = where_node.this
        parts = list(predicate.flatten()) if isinstance(predicate, exp.And) else [predicate]
        for part in parts:
            condition = _condition_from(part)
            if condition is not None:
                where.append(condition)

    group_node = _own(tree, exp.Group)
    group_by = [
        _column_name(e) or e.sql(dialect=read) for e in group_node.expressions
    ] if group_node is not None else []

    order_by = []
    order_node = _own(tree, exp.Order)
    if order_node is not None:
        for ordered in order_node.expressions:
            column = _column_name(ordered.this)
            if column:
                direction = "DESC" if ordered.args.get("desc") else "ASC"
                order_by.append(OrderByClause(column, direction))

    limit = _int_arg(_own(tree, exp.Limit), "expression")
    if limit is None:
        limit = _int_arg(_own(tree, exp.Fetch), "count")
    offset = _int_arg(_own(tree, exp.Offset), "expression")

    return QueryBuilderConfig(
        from_table=from_table,
        select=select or ["*"],
        joins=joins,
        where=where,
        group_by=group_by,
        order_by=order_by,
        limit=limit,
        offset=offset,
    )
