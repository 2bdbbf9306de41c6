# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""SQL dialect names and cross-dialect transpilation.

The builder speaks three dialects (postgresql, mysql, sqlserver). SQLGlot
handles parsing and translating SQL written for one engine into another.
"""

import logging
from enum import Enum
from typing import Optional

import sqlglot
from sqlglot.errors import SqlglotError

from quarry.core.errors import ValidationError
from quarry.core.models import Provider

logger = logging.getLogger(__name__)


class SQLDialect(str, Enum):
    """Dialects the query builder can render."""
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLSERVER = "sqlserver"


# SQLGlot dialect mapping from SQLAlchemy dialect/driver names
DIALECT_MAP = {
    # SQLAlchemy driver -> SQLGlot dialect
    "sqlite": "sqlite",
    "postgresql": "postgres",
    "postgres": "postgres",
    "psycopg2": "postgres",
    "mysql": "mysql",
    "mysqldb": "mysql",
    "pymysql": "mysql",
    "mariadb": "mysql",
    "mssql": "tsql",
    "pymssql": "tsql",
    "pyodbc": "tsql",
    "sqlserver": "tsql",
}

PROVIDER_DIALECTS = {
    Provider.POSTGRESQL: SQLDialect.POSTGRESQL,
    Provider.MYSQL: SQLDialect.MYSQL,
    Provider.SQLSERVER: SQLDialect.SQLSERVER,
}

# Dialect assumed for SQL whose origin is unknown
CANONICAL_DIALECT = "postgres"


def dialect_for_provider(provider: Provider | str) -> SQLDialect:
    """Builder dialect for a relational provider."""
    try:
        return PROVIDER_DIALECTS[Provider(provider)]
    except ValueError:
        raise ValidationError(f"Unsupported database provider: {provider}")
    except KeyError:
        raise ValidationError(f"Provider {provider} has no SQL dialect")


def to_sqlglot(dialect) -> str:
    """Map a builder dialect or SQLAlchemy name to its SQLGlot name."""
    name = dialect.value if isinstance(dialect, SQLDialect) else str(dialect).lower()
    return DIALECT_MAP.get(name, name)


def detect_dialect(engine) -> str:
    """Detect SQLGlot dialect from SQLAlchemy engine.

    Args:
        engine: SQLAlchemy Engine object

    Returns:
        SQLGlot dialect name (e.g., 'sqlite', 'postgres', 'mysql')
    """
    dialect_name = engine.dialect.name.lower()

    sqlglot_dialect = DIALECT_MAP.get(dialect_name)
    if sqlglot_dialect:
        return sqlglot_dialect

    # Try driver name as fallback
    driver = getattr(engine.dialect, "driver", None)
    if driver:
        sqlglot_dialect = DIALECT_MAP.get(driver.lower())
        if sqlglot_dialect:
            return sqlglot_dialect

    logger.warning(f"Unknown dialect '{dialect_name}', using as-is")
    return dialect_name


def transpile_sql(
    sql: str,
    target_dialect: str,
    source_dialect: Optional[str] = None,
) -> str:
    """Transpile SQL from source dialect to target dialect.

    Args:
        sql: SQL query string
        target_dialect: Target dialect (builder or SQLGlot name)
        source_dialect: Source dialect (default: postgres)

    Returns:
        Transpiled SQL string. If transpilation fails the original SQL is
        returned and a warning logged; the database then reports the error.
    """
    target = to_sqlglot(target_dialect)
    source = to_sqlglot(source_dialect) if source_dialect else CANONICAL_DIALECT
    if source == target:
        return sql

    try:
        result = sqlglot.transpile(sql, read=source, write=target, pretty=False)
    except SqlglotError as e:
        logger.warning(f"SQL transpilation failed: {e}. Using original SQL.")
        return sql

    if not result:
        return sql
    transpiled = result[0]
    if transpiled != sql:
        logger.debug(f"Transpiled SQL: {sql[:100]}... -> {transpiled[:100]}...")
    return transpiled
