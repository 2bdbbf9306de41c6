# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Quarry - unified data access and analysis engine.

Reads tabular data from files, relational and document databases and HTTP
APIs behind one fetch interface, and profiles what it reads.

Submodules:
- core: Models, configuration and errors
- catalog: File, database and API sources
- analysis: Schema detection and data quality profiling
- sql: Query building, dialects and heuristic optimization
- security: Encryption of connection secrets

Main classes:
- DataEngine: Entry point for fetching and analysis
- Config: Configuration loading from YAML
- TTLCache: Cache instance injected into the engine
"""

# Analysis
from quarry.analysis import (
    DataProfile,
    DetectedSchema,
    QualityReport,
    detect_schema,
    generate_quality_report,
    profile_data,
)
# Cache
from quarry.cache import TTLCache, generate_key, get_or_set_cache, invalidate_cache
# Catalog
from quarry.catalog.file import parse_file
# Core models and configuration
from quarry.core.config import (
    APISourceConfig,
    Config,
    ConnectionConfig,
    DatabaseSourceConfig,
    FileSourceConfig,
)
from quarry.core.errors import (
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
from quarry.core.models import (
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
# Engine
from quarry.engine import DataEngine
# SQL
from quarry.sql import QueryBuilderConfig, QueryOptimizer, build_sql_query, validate_query_config

__version__ = "0.1.0"

__all__ = [
    # Core
    "APISourceConfig",
    "ColumnDefinition",
    "Config",
    "ConnectionConfig",
    "DatabaseSourceConfig",
    "DataSource",
    "DataType",
    "FetchOptions",
    "FetchResult",
    "FileSourceConfig",
    "FilterCondition",
    "FilterOperator",
    "OrderByClause",
    "ParsedFileData",
    "Provider",
    "QueryPlan",
    "SortDirection",
    "SourceType",
    # Errors
    "DataFetchError",
    "DataSourceConnectionError",
    "DriverNotInstalledError",
    "EncryptionError",
    "ParseError",
    "QuarryError",
    "QueryExecutionError",
    "UnsupportedFormatError",
    "ValidationError",
    # Analysis
    "DataProfile",
    "DetectedSchema",
    "QualityReport",
    "detect_schema",
    "generate_quality_report",
    "profile_data",
    # SQL
    "QueryBuilderConfig",
    "QueryOptimizer",
    "build_sql_query",
    "validate_query_config",
    # Cache
    "TTLCache",
    "generate_key",
    "get_or_set_cache",
    "invalidate_cache",
    # Catalog
    "parse_file",
    # Engine
    "DataEngine",
]
