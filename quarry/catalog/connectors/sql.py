# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""SQLAlchemy-backed connectors for the relational providers.

Every call builds an engine with NullPool, so nothing is pooled between
calls, and disposes it on the way out.
"""

import logging
import re
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, NoSuchTableError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from quarry.catalog.connectors.base import (
    DatabaseConnector,
    DatabaseTable,
    QueryResult,
    TableColumn,
    TableSchema,
)
from quarry.core.errors import DataSourceConnectionError, QueryExecutionError
from quarry.core.models import Provider
from quarry.sql.dialects import SQLDialect

logger = logging.getLogger(__name__)

# Quoted literals, parentheses and SELECT keywords, in query order
_SELECT_SCAN = re.compile(r"'(?:[^']|'')*'|\(|\)|\bSELECT\s+(DISTINCT\s+)?", re.IGNORECASE)
_TOP = re.compile(r"TOP\b", re.IGNORECASE)

# What text() reads as a bind parameter
_BIND_PARAM = re.compile(r"(?<![:\w\\]):(\w+)(?!:)")


def _outer_select(query: str) -> Optional[re.Match]:
    """The first SELECT outside parentheses, so CTE bodies are skipped."""
    depth = 0
    for match in _SELECT_SCAN.finditer(query):
        token = match.group(0)
        if token == "(":
            depth += 1
        elif token == ")":
            depth -= 1
        elif depth == 0 and not token.startswith("'"):
            return match
    return None


def apply_row_limit(query: str, limit: Optional[int], dialect: SQLDialect) -> str:
    """
    Limit a query's rows unless it already limits itself.

    PostgreSQL and MySQL get a trailing LIMIT. SQL Server gets TOP n on the
    outermost SELECT (after DISTINCT when present, past any WITH clause),
    or FETCH NEXT when the query already has an OFFSET, since TOP and
    OFFSET cannot be combined.
    """
    if not limit:
        return query
    stripped = query.strip().rstrip(";").rstrip()
    if re.search(r"\bFETCH\s+(NEXT|FIRST)\b", stripped, re.IGNORECASE):
        return stripped

    if dialect == SQLDialect.SQLSERVER:
        if re.search(r"\bOFFSET\s+\S+\s+ROWS?\b", stripped, re.IGNORECASE):
            return f"{stripped} FETCH NEXT {limit} ROWS ONLY"
        select = _outer_select(stripped)
        if select is None or _TOP.match(stripped, select.end()):
            return stripped
        distinct = "DISTINCT " if select.group(1) else ""
        return f"{stripped[:select.start()]}SELECT {distinct}TOP {limit} {stripped[select.end():]}"

    if re.search(r"\bLIMIT\b", stripped, re.IGNORECASE):
        return stripped
    return f"{stripped} LIMIT {limit}"


def sql_statement(query: str, params: Optional[dict[str, Any]] = None):
    """
    Wrap SQL for execution.

    Without params, colons are escaped so text such as ':word' inside a
    literal is not taken for a bind parameter.
    """
    if params:
        return text(query)
    return text(_BIND_PARAM.sub(r"\\:\1", query))


class SQLAlchemyConnector(DatabaseConnector):
    """Common SQLAlchemy plumbing; subclasses set driver and dialect."""

    drivername: str = ""
    dialect: SQLDialect = SQLDialect.POSTGRESQL
    ping_query: str = "SELECT 1"
    default_schema: Optional[str] = None

    def connect_args(self) -> dict[str, Any]:
        """DBAPI keyword arguments for this provider."""
        return {}

    def create_engine(self) -> Engine:
        self.require_driver()
        uri = self.config.get_connection_uri(self.drivername)
        return create_engine(uri, poolclass=NullPool, connect_args=self.connect_args())

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """Fresh connection, closed and its engine disposed on every exit."""
        with self.slot():
            engine = self.create_engine()
            try:
                try:
                    conn = engine.connect()
                except DBAPIError as e:
                    raise DataSourceConnectionError(
                        f"{self.label} connection failed: {e.orig or e}"
                    ) from e
                with conn:
                    yield conn
            finally:
                engine.dispose()

    @property
    def schema(self) -> Optional[str]:
        return self.config.schema_name or self.default_schema

    def ping(self) -> None:
        with self.connection() as conn:
            conn.execute(text(self.ping_query))

    def list_tables(self) -> list[DatabaseTable]:
        with self.connection() as conn:
            inspector = inspect(conn)
            try:
                tables = [
                    DatabaseTable(name=name, schema=self.schema, type="table")
                    for name in inspector.get_table_names(schema=self.schema)
                ]
                tables.extend(
                    DatabaseTable(name=name, schema=self.schema, type="view")
                    for name in inspector.get_view_names(schema=self.schema)
                )
            except SQLAlchemyError as e:
                raise QueryExecutionError(f"Failed to list tables: {e}") from e
        logger.debug(f"{self.label}: found {len(tables)} tables and views")
        return sorted(tables, key=lambda t: t.name)

    def execute_query(
        self,
        query: str,
        limit: Optional[int] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> QueryResult:
        final_query = apply_row_limit(query, limit, self.dialect)
        logger.debug(f"{self.label} query: {final_query}")
        with self.connection() as conn:
            try:
                result = conn.execute(sql_statement(final_query, params), params or {})
                if not result.returns_rows:
                    return QueryResult(columns=[], rows=[], row_count=result.rowcount)
                columns = list(result.keys())
                rows = [dict(row._mapping) for row in result]
            except SQLAlchemyError as e:
                raise QueryExecutionError(
                    f"{self.label} query failed: {getattr(e, 'orig', None) or e}",
                    query=final_query,
                ) from e
        return QueryResult(columns=columns, rows=rows, row_count=len(rows))

    def get_table_schema(self, table_name: str, schema: Optional[str] = None) -> TableSchema:
        schema = schema or self.schema
        with self.connection() as conn:
            inspector = inspect(conn)
            try:
                raw_columns = inspector.get_columns(table_name, schema=schema)
                pk_constraint = inspector.get_pk_constraint(table_name, schema=schema)
            except NoSuchTableError as e:
                raise QueryExecutionError(f"Table not found: {table_name}") from e
            except SQLAlchemyError as e:
                raise QueryExecutionError(f"Failed to read schema for {table_name}: {e}") from e

        primary_keys = set(pk_constraint.get("constrained_columns") or []) if pk_constraint else set()
        columns = [
            TableColumn(
                name=col["name"],
                type=str(col["type"]),
                nullable=col.get("nullable", True),
                primary_key=col["name"] in primary_keys,
                default_value=col.get("default"),
                description=col.get("comment"),
            )
            for col in raw_columns
        ]
        return TableSchema(table_name=table_name, schema=schema, columns=columns)


class PostgreSQLConnector(SQLAlchemyConnector):
    provider = Provider.POSTGRESQL
    label = "PostgreSQL"
    drivername = "postgresql+psycopg2"
    driver_module = "psycopg2"
    install_hint = "pip install psycopg2-binary"
    dialect = SQLDialect.POSTGRESQL
    ping_query = "SELECT NOW()"
    default_schema = "public"

    def connect_args(self) -> dict[str, Any]:
        args: dict[str, Any] = {"connect_timeout": self.config.connect_timeout}
        if self.config.ssl:
            args["sslmode"] = "require"
        return args


class MySQLConnector(SQLAlchemyConnector):
    provider = Provider.MYSQL
    label = "MySQL"
    drivername = "mysql+pymysql"
    driver_module = "pymysql"
    install_hint = "pip install PyMySQL"
    dialect = SQLDialect.MYSQL

    def connect_args(self) -> dict[str, Any]:
        args: dict[str, Any] = {"connect_timeout": self.config.connect_timeout}
        if self.config.ssl:
            args["ssl_verify_cert"] = True
        return args


class SQLServerConnector(SQLAlchemyConnector):
    provider = Provider.SQLSERVER
    label = "SQL Server"
    drivername = "mssql+pymssql"
    driver_module = "pymssql"
    install_hint = "pip install pymssql"
    dialect = SQLDialect.SQLSERVER
    default_schema = "dbo"

    def connect_args(self) -> dict[str, Any]:
        return {"login_timeout": self.config.connect_timeout}
