# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Base class for database connectors.

One connector per provider, each opening a fresh connection per call and
releasing it on every exit path. Connectors take a decrypted
ConnectionConfig; they never see ciphertext.
"""

import importlib.util
import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Any, Iterator, Optional, TYPE_CHECKING

from quarry.core.config import ConnectionConfig
from quarry.core.errors import DriverNotInstalledError
from quarry.core.models import Provider

if TYPE_CHECKING:
    from quarry.catalog.connectors.limiter import ConnectionLimiter

logger = logging.getLogger(__name__)

DRIVER_NOT_INSTALLED = "DRIVER_NOT_INSTALLED"


@dataclass
class ConnectionTestResult:
    """Outcome of a connection probe. Probes report failure, they never raise."""
    success: bool
    message: str
    latency: Optional[float] = None  # milliseconds
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class DatabaseTable:
    name: str
    schema: Optional[str] = None
    type: str = "table"  # table | view
    row_count: Optional[int] = None


@dataclass
class TableColumn:
    name: str
    type: str
    nullable: bool = True
    primary_key: bool = False
    default_value: Any = None
    description: Optional[str] = None


@dataclass
class TableSchema:
    table_name: str
    columns: list[TableColumn] = field(default_factory=list)
    schema: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class QueryResult:
    columns: list[str]
    rows: list[dict[str, Any]]
    row_count: int


class DatabaseConnector(ABC):
    """Abstract base class for database connectors.

    Subclasses must implement:
    - ping(): Open a connection and run a trivial statement
    - list_tables(): Tables and views visible to the configured user
    - execute_query(): Run a query, optionally limited and parameterized
    - get_table_schema(): Column definitions for one table
    """

    provider: Provider
    label: str = "Database"
    driver_module: str = ""
    install_hint: str = ""

    def __init__(self, config: ConnectionConfig, limiter: Optional["ConnectionLimiter"] = None):
        self.config = config
        self.limiter = limiter

    def require_driver(self) -> None:
        """Raise DriverNotInstalledError when the DBAPI module is missing."""
        if self.driver_module and importlib.util.find_spec(self.driver_module) is None:
            raise DriverNotInstalledError(
                driver=self.driver_module,
                install_hint=self.install_hint,
                provider=self.label,
            )

    @contextmanager
    def slot(self) -> Iterator[None]:
        """Hold a connection slot for this datasource, when limited."""
        if self.limiter is None:
            yield
            return
        with self.limiter.acquire(self.config.connection_key()):
            yield

    @abstractmethod
    def ping(self) -> None:
        """Connect and run a trivial statement; raise on failure.

        Implementations take their own connection slot.
        """
        pass

    def test_connection(self) -> ConnectionTestResult:
        start = time.perf_counter()
        try:
            self.ping()
        except DriverNotInstalledError as e:
            return ConnectionTestResult(
                success=False,
                message=str(e),
                latency=_elapsed_ms(start),
                error=DRIVER_NOT_INSTALLED,
            )
        except Exception as e:
            logger.debug(f"{self.label} connection probe failed: {e}")
            return ConnectionTestResult(
                success=False,
                message=f"{self.label} connection failed: {e}",
                latency=_elapsed_ms(start),
                error=str(e),
            )
        return ConnectionTestResult(
            success=True,
            message=f"{self.label} connection successful",
            latency=_elapsed_ms(start),
        )

    @abstractmethod
    def list_tables(self) -> list[DatabaseTable]:
        pass

    @abstractmethod
    def execute_query(
        self,
        query: Any,
        limit: Optional[int] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> QueryResult:
        """Execute a query and return every row as a dict.

        Args:
            query: Query in the provider's native form
            limit: Row limit applied when the query has none
            params: Bind parameters

        Returns:
            QueryResult with column names in result order
        """
        pass

    @abstractmethod
    def get_table_schema(self, table_name: str, schema: Optional[str] = None) -> TableSchema:
        pass


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
