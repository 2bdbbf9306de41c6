# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Database connectors, one per provider."""

from .base import (
    DRIVER_NOT_INSTALLED,
    ConnectionTestResult,
    DatabaseConnector,
    DatabaseTable,
    QueryResult,
    TableColumn,
    TableSchema,
)
from .limiter import ConnectionLimiter
from .mongodb import (
    MongoDBConnector,
    build_mongo_filter,
    build_mongo_query,
    infer_field_type,
)
from .registry import (
    connector_class,
    get_connector,
    register_connector,
)
from .sql import (
    MySQLConnector,
    PostgreSQLConnector,
    SQLAlchemyConnector,
    SQLServerConnector,
    apply_row_limit,
)

__all__ = [
    "DRIVER_NOT_INSTALLED",
    "ConnectionLimiter",
    "ConnectionTestResult",
    "DatabaseConnector",
    "DatabaseTable",
    "MongoDBConnector",
    "MySQLConnector",
    "PostgreSQLConnector",
    "QueryResult",
    "SQLAlchemyConnector",
    "SQLServerConnector",
    "TableColumn",
    "TableSchema",
    "apply_row_limit",
    "build_mongo_filter",
    "build_mongo_query",
    "connector_class",
    "get_connector",
    "infer_field_type",
    "register_connector",
]
