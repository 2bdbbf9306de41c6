# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Connector registry keyed by database provider."""

import logging
from typing import Optional

from quarry.catalog.connectors.base import DatabaseConnector
from quarry.catalog.connectors.limiter import ConnectionLimiter
from quarry.catalog.connectors.mongodb import MongoDBConnector
from quarry.catalog.connectors.sql import (
    MySQLConnector,
    PostgreSQLConnector,
    SQLServerConnector,
)
from quarry.core.config import ConnectionConfig
from quarry.core.errors import ValidationError
from quarry.core.models import Provider

logger = logging.getLogger(__name__)

_CONNECTORS: dict[Provider, type[DatabaseConnector]] = {
    Provider.POSTGRESQL: PostgreSQLConnector,
    Provider.MYSQL: MySQLConnector,
    Provider.SQLSERVER: SQLServerConnector,
    Provider.MONGODB: MongoDBConnector,
}


def _coerce_provider(provider: Provider | str) -> Provider:
    try:
        return Provider(provider)
    except ValueError:
        raise ValidationError(f"Unsupported database provider: {provider}")


def register_connector(provider: Provider | str, connector_cls: type[DatabaseConnector]) -> None:
    """Register (or replace) the connector class for a provider."""
    _CONNECTORS[_coerce_provider(provider)] = connector_cls


def connector_class(provider: Provider | str) -> type[DatabaseConnector]:
    provider = _coerce_provider(provider)
    if provider not in _CONNECTORS:
        raise ValidationError(f"Unsupported database provider: {provider.value}")
    return _CONNECTORS[provider]


def get_connector(
    provider: Provider | str,
    config: ConnectionConfig,
    limiter: Optional[ConnectionLimiter] = None,
) -> DatabaseConnector:
    """Instantiate the connector for a provider."""
    cls = connector_class(provider)
    logger.debug(f"Using {cls.__name__} for {provider}")
    return cls(config, limiter=limiter)
