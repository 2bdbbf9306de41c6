# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Core models, errors and configuration."""

from .config import (
    APISourceConfig,
    CacheConfig,
    Config,
    ConnectionConfig,
    ConnectorConfig,
    DatabaseSourceConfig,
    FileSourceConfig,
    OptimizerConfig,
    SchemaDetectionConfig,
    SourceDefinition,
    StorageConfig,
)
from .errors import (
    APIRequestError,
    DataFetchError,
    DataSourceConnectionError,
    DriverNotInstalledError,
    EncryptionError,
    ParseError,
    QuarryError,
    QueryExecutionError,
    UnsupportedFormatError,
    ValidationError,
)
from .models import (
    ColumnDefinition,
    DataSource,
    DataType,
    FetchOptions,
    FetchResult,
    FilterCondition,
    FilterOperator,
    OrderByClause,
    ParsedFileData,
    Provider,
    QueryPlan,
    SortDirection,
    SourceType,
)

__all__ = [
    # Config
    "APISourceConfig",
    "CacheConfig",
    "Config",
    "ConnectionConfig",
    "ConnectorConfig",
    "DatabaseSourceConfig",
    "FileSourceConfig",
    "OptimizerConfig",
    "SchemaDetectionConfig",
    "SourceDefinition",
    "StorageConfig",
    # Errors
    "APIRequestError",
    "DataFetchError",
    "DataSourceConnectionError",
    "DriverNotInstalledError",
    "EncryptionError",
    "ParseError",
    "QuarryError",
    "QueryExecutionError",
    "UnsupportedFormatError",
    "ValidationError",
    # Models
    "ColumnDefinition",
    "DataSource",
    "DataType",
    "FetchOptions",
    "FetchResult",
    "FilterCondition",
    "FilterOperator",
    "OrderByClause",
    "ParsedFileData",
    "Provider",
    "QueryPlan",
    "SortDirection",
    "SourceType",
]
