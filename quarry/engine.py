# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Data engine: one entry point over files, databases and HTTP APIs.

The engine is request-scoped apart from its cache, which is an explicit
TTLCache instance handed in (or built from config) rather than process
state. Every fetch path wraps lower-level failures in DataFetchError with
a path-specific prefix and keeps the original message.
"""

import copy
import logging
import re
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from quarry.analysis.profiler import DataProfile, profile_data
from quarry.analysis.schema_detector import DetectedSchema, detect_schema
from quarry.cache import TTLCache, config_digest, generate_key
from quarry.catalog import connections
from quarry.catalog.api_source import APISource
from quarry.catalog.connectors.base import ConnectionTestResult, DatabaseTable, QueryResult, TableSchema
from quarry.catalog.connectors.limiter import ConnectionLimiter
from quarry.catalog.connectors.mongodb import build_mongo_query
from quarry.catalog.file.connector import FileConnector
from quarry.catalog.file.parser import build_columns, union_columns
from quarry.catalog.file.storage import FileStore, create_file_store
from quarry.core.config import (
    APISourceConfig,
    Config,
    ConnectionConfig,
    DatabaseSourceConfig,
    FileSourceConfig,
)
from quarry.core.errors import DataFetchError, QuarryError, ValidationError
from quarry.core.models import (
    ColumnDefinition,
    DataSource,
    DataType,
    FetchOptions,
    FetchResult,
    ParsedFileData,
    Provider,
    QueryPlan,
    SourceType,
)
from quarry.security.encryption import decrypt_connection_config
from quarry.sql.builder import (
    DialectLike,
    QueryBuilderConfig,
    ValidationResult,
    build_sql_query,
    validate_query_config,
)
from quarry.sql.dataset_query import DEFAULT_DATASET_TABLE, build_dataset_query
from quarry.sql.dialects import SQLDialect, dialect_for_provider, transpile_sql
from quarry.sql.optimizer import OptimizationContext, QueryOptimizer
from quarry.transform import process_rows

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors a fetch path converts into DataFetchError
_FETCH_ERRORS = (QuarryError, OSError, ValueError)

_SQL_TYPE_RULES = (
    (r"bool|bit\b", DataType.BOOLEAN),
    (r"int|serial", DataType.INTEGER),
    (r"numeric|decimal|float|double|real|money|number", DataType.DECIMAL),
    (r"date|time", DataType.DATE),
)


def _data_type_for(native_type: str) -> DataType:
    """Map a database or document field type onto the engine's types."""
    lowered = native_type.lower()
    for pattern, data_type in _SQL_TYPE_RULES:
        if re.search(pattern, lowered):
            return data_type
    return DataType.STRING


def _coerce_source(source: DataSource | dict) -> DataSource:
    if isinstance(source, DataSource):
        return source
    try:
        return DataSource(
            id=str(source.get("id", "")),
            name=source.get("name", ""),
            type=source["type"],
            provider=source.get("provider"),
        )
    except KeyError:
        raise ValidationError("Data source requires a type")
    except ValueError:
        raise ValidationError(f"Unsupported data source type: {source.get('type')}")


def _coerce_provider(provider: Provider | str) -> Provider:
    try:
        return Provider(provider)
    except ValueError:
        raise ValidationError(f"Unsupported database provider: {provider}")


def _coerce_options(options: Optional[FetchOptions | dict]) -> FetchOptions:
    if options is None:
        return FetchOptions()
    if isinstance(options, dict):
        return FetchOptions.from_dict(options)
    return options


def _file_config(source_config: Any) -> FileSourceConfig:
    if isinstance(source_config, FileSourceConfig):
        return source_config
    return FileSourceConfig.model_validate(source_config)


def _api_config(source_config: Any) -> APISourceConfig:
    if isinstance(source_config, APISourceConfig):
        return source_config
    return APISourceConfig.model_validate(source_config)


def _database_config(source_config: Any) -> DatabaseSourceConfig:
    """Accept the nested form, a bare ConnectionConfig, or a flat dict."""
    if isinstance(source_config, DatabaseSourceConfig):
        return source_config
    if isinstance(source_config, ConnectionConfig):
        return DatabaseSourceConfig(connection=source_config)
    data = dict(source_config)
    if "connection" in data:
        return DatabaseSourceConfig.model_validate(data)
    table = data.pop("table", DEFAULT_DATASET_TABLE)
    return DatabaseSourceConfig(connection=ConnectionConfig.model_validate(data), table=table)


class DataEngine:
    """Unified data access over files, databases and HTTP APIs.

    Usage:
        engine = DataEngine.from_yaml("quarry.yaml")
        result = engine.fetch_data(
            DataSource(id="1", name="sales", type="FILE"),
            {"filePath": "sales.csv"},
            FetchOptions(limit=10),
        )
        engine.close()
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        cache: Optional[TTLCache] = None,
        file_store: Optional[FileStore] = None,
        api_source: Optional[APISource] = None,
        limiter: Optional[ConnectionLimiter] = None,
    ):
        """
        Args:
            config: Engine configuration (defaults apply when omitted)
            cache: Cache instance; built from config.cache when omitted
            file_store: Where file bytes come from; picked by environment when omitted
            api_source: HTTP row source for API data sources
            limiter: Per-datasource connection limiter
        """
        self.config = config or Config()
        self.cache = cache if cache is not None else TTLCache.from_config(self.config.cache)
        self.files = FileConnector(file_store or create_file_store(self.config))
        self.api = api_source or APISource()
        self.limiter = limiter or ConnectionLimiter(self.config.connectors.max_concurrent_connections)
        self.optimizer = QueryOptimizer(self.config.optimizer)
        logger.info(f"Data engine ready (environment={self.config.environment})")

    @classmethod
    def from_yaml(cls, path: str | Path, **kwargs) -> "DataEngine":
        return cls(Config.from_yaml(path), **kwargs)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def fetch_data(
        self,
        source: DataSource | dict,
        source_config: Any,
        options: Optional[FetchOptions | dict] = None,
        use_cache: bool = False,
        cache_ttl: Optional[float] = None,
    ) -> FetchResult:
        """
        Fetch rows from a data source.

        Args:
            source: Data source record (type, and provider for databases)
            source_config: FileSourceConfig, DatabaseSourceConfig or
                APISourceConfig, or the equivalent dict; database and API
                configs may also arrive encrypted, as a whole or as the
                "connection" value
            options: Filters, projection, ordering and pagination
            use_cache: Serve repeated identical fetches from the cache
            cache_ttl: Seconds to cache the result (cache default when None)

        Returns:
            FetchResult

        Raises:
            ValidationError: Malformed options or an unsupported source type
            DataFetchError: Anything failing on the fetch path itself
        """
        source = _coerce_source(source)
        options = _coerce_options(options)
        options.validate()

        if not use_cache:
            return self._fetch(source, source_config, options)

        key = generate_key(f"fetch:{source.type.value}:{source.id}", {
            "config": config_digest(source_config),
            "options": options.to_dict(),
        })
        result = self.cache.get_or_set(key, lambda: self._fetch(source, source_config, options), cache_ttl)
        # Callers own what they get back; the cached entry stays intact
        return copy.deepcopy(result)

    def _decrypt(self, config: Any) -> Any:
        """Decrypt an encrypted connection payload; other configs pass through."""
        if isinstance(config, str):
            return decrypt_connection_config(config, env_var=self.config.encryption_key_env)
        return config

    def _database_config(self, source_config: Any) -> DatabaseSourceConfig:
        source_config = self._decrypt(source_config)
        if isinstance(source_config, dict) and isinstance(source_config.get("connection"), str):
            source_config = {**source_config, "connection": self._decrypt(source_config["connection"])}
        return _database_config(source_config)

    def _fetch(self, source: DataSource, source_config: Any, options: FetchOptions) -> FetchResult:
        if source.type == SourceType.FILE:
            return self._fetch_file(source_config, options)
        if source.type == SourceType.DATABASE:
            return self._fetch_database(source, source_config, options)
        if source.type == SourceType.API:
            return self._fetch_api(source_config, options)
        raise ValidationError(f"Unsupported data source type: {source.type.value}")

    def _fetch_file(self, source_config: Any, options: FetchOptions) -> FetchResult:
        try:
            parsed = self.files.load(_file_config(source_config))
            processed = process_rows(parsed.rows, options)
        except _FETCH_ERRORS as e:
            raise DataFetchError(f"Failed to fetch data from file: {e}", "FILE", e) from e

        names = parsed.column_names
        columns = [c for c in options.columns if c in names] if options.columns else names
        return FetchResult(
            columns=columns,
            rows=processed.rows,
            row_count=len(processed.rows),
            total_count=parsed.row_count,
            matched_count=processed.matched_count,
        )

    def _fetch_database(self, source: DataSource, source_config: Any, options: FetchOptions) -> FetchResult:
        if source.provider is None:
            raise ValidationError("DATABASE source requires a provider")
        try:
            db_config = self._database_config(source_config)
            if source.provider == Provider.MONGODB:
                query = build_mongo_query(options, db_config.table)
                result = connections.execute_database_query(
                    source.provider, db_config.connection, query, limiter=self.limiter
                )
            else:
                sql, params = build_dataset_query(
                    options, db_config.table, dialect_for_provider(source.provider)
                )
                logger.debug(f"Dataset query: {sql} {params}")
                result = connections.execute_database_query(
                    source.provider, db_config.connection, sql, params=params, limiter=self.limiter
                )
        except _FETCH_ERRORS as e:
            raise DataFetchError(f"Failed to fetch data from database: {e}", "DATABASE", e) from e

        # The database applied every predicate; rows come back verbatim
        return FetchResult(columns=result.columns, rows=result.rows, row_count=result.row_count)

    def _fetch_api(self, source_config: Any, options: FetchOptions) -> FetchResult:
        try:
            rows = self.api.fetch_rows(_api_config(self._decrypt(source_config)))
            processed = process_rows(rows, options)
        except _FETCH_ERRORS as e:
            raise DataFetchError(f"Failed to fetch data from API: {e}", "API", e) from e

        columns = list(processed.rows[0].keys()) if processed.rows else []
        return FetchResult(
            columns=columns,
            rows=processed.rows,
            row_count=len(processed.rows),
            matched_count=processed.matched_count,
        )

    def get_data_source_schema(self, source: DataSource | dict, source_config: Any) -> list[ColumnDefinition]:
        """
        Column definitions for a data source.

        Files are parsed and typed by inference, databases report their
        table schema, and API columns are inferred from the returned rows.
        """
        source = _coerce_source(source)
        if source.type == SourceType.FILE:
            return self.files.load(_file_config(source_config)).columns
        if source.type == SourceType.DATABASE:
            if source.provider is None:
                raise ValidationError("DATABASE source requires a provider")
            db_config = self._database_config(source_config)
            schema = self.get_table_schema(source.provider, db_config.connection, db_config.table)
            return [
                ColumnDefinition(
                    column_name=col.name,
                    data_type=_data_type_for(col.type),
                    is_nullable=col.nullable,
                    is_primary_key=col.primary_key,
                    description=col.description,
                )
                for col in schema.columns
            ]
        if source.type == SourceType.API:
            rows = self.api.fetch_rows(_api_config(self._decrypt(source_config)))
            return build_columns(rows, union_columns(rows))
        raise ValidationError(f"Unsupported data source type: {source.type.value}")

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def profile_data(self, rows: list[dict[str, Any]], columns: list[ColumnDefinition]) -> DataProfile:
        return profile_data(rows, columns)

    def detect_schema(self, parsed: ParsedFileData) -> DetectedSchema:
        return detect_schema(parsed, self.config.schema_detection)

    # ------------------------------------------------------------------
    # SQL
    # ------------------------------------------------------------------

    def build_sql_query(
        self,
        config: QueryBuilderConfig | dict,
        dialect: DialectLike = SQLDialect.POSTGRESQL,
    ) -> str:
        if isinstance(config, dict):
            config = QueryBuilderConfig.from_dict(config)
        return build_sql_query(config, dialect)

    def validate_query_config(self, config: QueryBuilderConfig | dict) -> ValidationResult:
        if isinstance(config, dict):
            config = QueryBuilderConfig.from_dict(config)
        return validate_query_config(config)

    def optimize_query(self, query: str, context: Optional[OptimizationContext] = None) -> QueryPlan:
        return self.optimizer.optimize(query, context)

    # ------------------------------------------------------------------
    # Databases
    # ------------------------------------------------------------------

    def test_database_connection(
        self,
        source_type: SourceType | str,
        provider: Optional[Provider | str],
        config: ConnectionConfig | dict | str,
    ) -> ConnectionTestResult:
        return connections.test_database_connection(
            source_type, provider, self._decrypt(config), limiter=self.limiter
        )

    def list_database_tables(
        self,
        provider: Provider | str,
        config: ConnectionConfig | dict | str,
    ) -> list[DatabaseTable]:
        return connections.list_database_tables(provider, self._decrypt(config), limiter=self.limiter)

    def get_table_schema(
        self,
        provider: Provider | str,
        config: ConnectionConfig | dict | str,
        table_name: str,
        schema: Optional[str] = None,
    ) -> TableSchema:
        return connections.get_table_schema(
            provider, self._decrypt(config), table_name, schema, limiter=self.limiter
        )

    def execute_query(
        self,
        provider: Provider | str,
        config: ConnectionConfig | dict | str,
        query: Any,
        limit: Optional[int] = None,
        params: Optional[dict[str, Any]] = None,
        source_dialect: Optional[str] = None,
    ) -> QueryResult:
        """
        Run a query on a fresh connection.

        SQL written for another dialect is transpiled to the provider's
        dialect first when source_dialect is given. The connection config
        may be passed encrypted; it is decrypted with the key named by
        encryption_key_env.
        """
        if source_dialect and _coerce_provider(provider) != Provider.MONGODB:
            query = transpile_sql(query, dialect_for_provider(provider), source_dialect)
        return connections.execute_database_query(
            provider, self._decrypt(config), query, limit=limit, params=params, limiter=self.limiter
        )

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def get_or_set_cache(self, key: str, fetcher: Callable[[], T], ttl: Optional[float] = None) -> T:
        return self.cache.get_or_set(key, fetcher, ttl)

    def invalidate_cache(self, prefix: str) -> int:
        return self.cache.invalidate(prefix)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop the cache sweeper and release HTTP resources."""
        self.cache.stop()
        self.api.close()

    def __enter__(self) -> "DataEngine":
        self.cache.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
