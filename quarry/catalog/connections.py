# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Caller-facing connection operations.

Thin functions over the connector registry: each resolves the provider's
connector, opens a fresh connection and returns plain results.
"""

import logging
import time
from typing import Any, Optional

import httpx

from quarry.catalog.connectors.base import (
    ConnectionTestResult,
    DatabaseTable,
    QueryResult,
    TableSchema,
)
from quarry.catalog.connectors.limiter import ConnectionLimiter
from quarry.catalog.connectors.registry import get_connector
from quarry.core.config import ConnectionConfig
from quarry.core.errors import ValidationError
from quarry.core.models import Provider, SourceType

logger = logging.getLogger(__name__)

API_PROBE_TIMEOUT = 10.0


def _as_config(config: ConnectionConfig | dict) -> ConnectionConfig:
    if isinstance(config, ConnectionConfig):
        return config
    return ConnectionConfig.model_validate(config)


def test_api_connection(
    config: ConnectionConfig,
    client: Optional[httpx.Client] = None,
) -> ConnectionTestResult:
    """GET the API's URL with basic auth; any 2xx counts as reachable."""
    url = config.api_url or config.connection_string or f"https://{config.host}"
    auth = (config.username, config.password or "") if config.username else None
    headers = {k: str(v) for k, v in config.options.items()}
    start = time.perf_counter()
    try:
        if client is None:
            response = httpx.get(url, auth=auth, headers=headers, timeout=API_PROBE_TIMEOUT)
        else:
            response = client.get(url, auth=auth, headers=headers, timeout=API_PROBE_TIMEOUT)
    except httpx.HTTPError as e:
        return ConnectionTestResult(
            success=False,
            message=f"API connection failed: {e}",
            latency=_elapsed_ms(start),
            error=str(e),
        )

    if response.is_success:
        return ConnectionTestResult(
            success=True,
            message="API connection successful",
            latency=_elapsed_ms(start),
        )
    return ConnectionTestResult(
        success=False,
        message=f"API connection failed: {response.status_code} {response.reason_phrase}",
        latency=_elapsed_ms(start),
    )


def test_database_connection(
    source_type: SourceType | str,
    provider: Optional[Provider | str],
    config: ConnectionConfig | dict,
    limiter: Optional[ConnectionLimiter] = None,
    http_client: Optional[httpx.Client] = None,
) -> ConnectionTestResult:
    """
    Probe a data source. Never raises; failures come back as results.

    Args:
        source_type: FILE, DATABASE or API
        provider: Database provider (DATABASE only)
        config: Decrypted connection settings
        limiter: Optional per-datasource connection limiter
        http_client: Client for the API probe, mainly for tests

    Returns:
        ConnectionTestResult with latency in milliseconds
    """
    try:
        source_type = SourceType(source_type)
    except ValueError:
        return ConnectionTestResult(success=False, message=f"Unsupported data source type: {source_type}")

    if source_type == SourceType.FILE:
        return ConnectionTestResult(success=True, message="File connection validated", latency=0)

    try:
        config = _as_config(config)
    except ValueError as e:
        return ConnectionTestResult(success=False, message=f"Invalid connection config: {e}", error=str(e))

    if source_type == SourceType.API:
        return test_api_connection(config, http_client)

    if source_type == SourceType.DATABASE:
        if provider is None:
            return ConnectionTestResult(success=False, message="Database provider is required")
        try:
            connector = get_connector(provider, config, limiter)
        except ValidationError as e:
            return ConnectionTestResult(success=False, message=str(e))
        result = connector.test_connection()
        logger.debug(f"Connection test for {provider}: success={result.success}")
        return result

    return ConnectionTestResult(success=False, message=f"Unsupported data source type: {source_type.value}")


def list_database_tables(
    provider: Provider | str,
    config: ConnectionConfig | dict,
    limiter: Optional[ConnectionLimiter] = None,
) -> list[DatabaseTable]:
    """Tables and views (collections for MongoDB)."""
    return get_connector(provider, _as_config(config), limiter).list_tables()


def execute_database_query(
    provider: Provider | str,
    config: ConnectionConfig | dict,
    query: Any,
    limit: Optional[int] = None,
    params: Optional[dict[str, Any]] = None,
    limiter: Optional[ConnectionLimiter] = None,
) -> QueryResult:
    """
    Run a query on a fresh connection.

    Args:
        provider: Database provider
        config: Decrypted connection settings
        query: SQL text, or a JSON query document for MongoDB
        limit: Row limit appended when the query has none
        params: Named bind parameters for SQL providers
        limiter: Optional per-datasource connection limiter
    """
    return get_connector(provider, _as_config(config), limiter).execute_query(query, limit, params)


def get_table_schema(
    provider: Provider | str,
    config: ConnectionConfig | dict,
    table_name: str,
    schema: Optional[str] = None,
    limiter: Optional[ConnectionLimiter] = None,
) -> TableSchema:
    """Column definitions for one table."""
    return get_connector(provider, _as_config(config), limiter).get_table_schema(table_name, schema)


def get_table_schemas(
    provider: Provider | str,
    config: ConnectionConfig | dict,
    table_names: Optional[list[str]] = None,
    limiter: Optional[ConnectionLimiter] = None,
) -> list[TableSchema]:
    """Schemas for several tables; every listed table when table_names is None."""
    connector = get_connector(provider, _as_config(config), limiter)
    if table_names is None:
        table_names = [t.name for t in connector.list_tables()]
    return [connector.get_table_schema(name) for name in table_names]


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
