# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Core data structures shared by every layer of the engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from quarry.core.errors import ValidationError


class SourceType(str, Enum):
    """Kind of data source a fetch request targets."""
    FILE = "FILE"
    DATABASE = "DATABASE"
    API = "API"
    CLOUD = "CLOUD"


class Provider(str, Enum):
    """Database engine behind a DATABASE source."""
    POSTGRESQL = "POSTGRESQL"
    MYSQL = "MYSQL"
    SQLSERVER = "SQLSERVER"
    MONGODB = "MONGODB"


class DataType(str, Enum):
    """Column types produced by type inference."""
    INTEGER = "integer"
    DECIMAL = "decimal"
    STRING = "string"
    BOOLEAN = "boolean"
    DATE = "date"


NUMERIC_TYPES = (DataType.INTEGER, DataType.DECIMAL)


class FilterOperator(str, Enum):
    """Operators accepted in filter conditions."""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    GREATER_THAN_OR_EQUAL = "greaterThanOrEqual"
    LESS_THAN_OR_EQUAL = "lessThanOrEqual"
    BETWEEN = "between"
    IN = "in"
    NOT_IN = "notIn"
    IS_NULL = "isNull"
    IS_NOT_NULL = "isNotNull"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass
class DataSource:
    """A catalog data source record, consumed per call and never persisted."""
    id: str
    name: str
    type: SourceType
    provider: Optional[Provider] = None

    def __post_init__(self):
        self.type = SourceType(self.type)
        if self.provider is not None:
            self.provider = Provider(self.provider)


@dataclass
class ColumnDefinition:
    """Column description produced by the parser and schema detector."""
    column_name: str
    data_type: str = DataType.STRING
    is_nullable: bool = True
    is_primary_key: bool = False
    sample_values: list[Any] = field(default_factory=list)
    description: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "column_name": self.column_name,
            "data_type": str(DataType(self.data_type).value),
            "is_nullable": self.is_nullable,
            "is_primary_key": self.is_primary_key,
            "sample_values": list(self.sample_values),
            "description": self.description,
        }


@dataclass
class FilterCondition:
    """A single predicate: column, operator and operand."""
    column: str
    operator: FilterOperator
    value: Any = None
    logical_operator: Optional[str] = None  # "AND" / "OR", SQL builder only

    def __post_init__(self):
        try:
            self.operator = FilterOperator(self.operator)
        except ValueError:
            raise ValidationError(f"Unsupported operator: {self.operator}")
        if self.logical_operator is not None:
            self.logical_operator = self.logical_operator.upper()
            if self.logical_operator not in ("AND", "OR"):
                raise ValidationError(
                    f"Unsupported logical operator: {self.logical_operator}"
                )

    def validate(self) -> None:
        """Check that the operand has the shape the operator needs."""
        if not self.column:
            raise ValidationError("Filter column is required")
        if self.operator == FilterOperator.BETWEEN:
            if not isinstance(self.value, (list, tuple)) or len(self.value) != 2:
                raise ValidationError(
                    f"BETWEEN operator on '{self.column}' requires a list of 2 values"
                )
        elif self.operator in (FilterOperator.IN, FilterOperator.NOT_IN):
            if not isinstance(self.value, (list, tuple)) or len(self.value) == 0:
                raise ValidationError(
                    f"{self.operator.value} operator on '{self.column}' requires a non-empty list"
                )

    @classmethod
    def from_dict(cls, data: dict) -> "FilterCondition":
        return cls(
            column=data["column"],
            operator=data["operator"],
            value=data.get("value"),
            logical_operator=data.get("logical_operator", data.get("logicalOperator")),
        )


@dataclass
class OrderByClause:
    column: str
    direction: SortDirection = SortDirection.ASC

    def __post_init__(self):
        try:
            self.direction = SortDirection(str(self.direction).upper())
        except ValueError:
            raise ValidationError(f"Unsupported sort direction: {self.direction}")

    @classmethod
    def from_dict(cls, data: dict) -> "OrderByClause":
        return cls(column=data["column"], direction=data.get("direction", "ASC"))


@dataclass
class FetchOptions:
    """Per-call filter, projection, ordering and pagination options."""
    limit: Optional[int] = None
    offset: Optional[int] = None
    columns: list[str] = field(default_factory=list)
    filters: list[FilterCondition] = field(default_factory=list)
    order_by: list[OrderByClause] = field(default_factory=list)

    def validate(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise ValidationError("limit must be non-negative")
        if self.offset is not None and self.offset < 0:
            raise ValidationError("offset must be non-negative")
        for condition in self.filters:
            condition.validate()

    def to_dict(self) -> dict:
        """Plain representation, used for cache key derivation."""
        return {
            "limit": self.limit,
            "offset": self.offset,
            "columns": list(self.columns),
            "filters": [
                {"column": f.column, "operator": f.operator.value, "value": f.value}
                for f in self.filters
            ],
            "order_by": [
                {"column": o.column, "direction": o.direction.value} for o in self.order_by
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FetchOptions":
        return cls(
            limit=data.get("limit"),
            offset=data.get("offset"),
            columns=list(data.get("columns") or []),
            filters=[FilterCondition.from_dict(f) for f in data.get("filters") or []],
            order_by=[
                OrderByClause.from_dict(o)
                for o in data.get("order_by", data.get("orderBy")) or []
            ],
        )


@dataclass
class FetchResult:
    """Rows returned by a fetch.

    total_count is the row count before any processing and is only set when
    it is known (file sources). matched_count is the count after filtering
    and before pagination, set for paths that filter in memory.
    """
    columns: list[str]
    rows: list[dict[str, Any]]
    row_count: int
    total_count: Optional[int] = None
    matched_count: Optional[int] = None

    def to_dict(self) -> dict:
        result = {
            "columns": self.columns,
            "rows": self.rows,
            "row_count": self.row_count,
        }
        if self.total_count is not None:
            result["total_count"] = self.total_count
        if self.matched_count is not None:
            result["matched_count"] = self.matched_count
        return result


@dataclass
class ParsedFileData:
    """Decoded tabular file.

    row_count is always the full parsed length, even when rows were
    truncated for preview.
    """
    rows: list[dict[str, Any]]
    columns: list[ColumnDefinition]
    row_count: int
    column_count: int
    sample_data: list[dict[str, Any]] = field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        return [c.column_name for c in self.columns]


@dataclass
class QueryPlan:
    """Advisory optimizer output. Never blocks execution."""
    optimized_query: str
    estimated_rows: int
    estimated_cost: float
    indexes: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
