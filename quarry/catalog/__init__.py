# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Data source access: files, databases and HTTP APIs."""

from .api_source import APISource, build_headers, classify_http_error, extract_rows
from .connections import (
    execute_database_query,
    get_table_schema,
    get_table_schemas,
    list_database_tables,
    test_api_connection,
    test_database_connection,
)

__all__ = [
    "APISource",
    "build_headers",
    "classify_http_error",
    "execute_database_query",
    "extract_rows",
    "get_table_schema",
    "get_table_schemas",
    "list_database_tables",
    "test_api_connection",
    "test_database_connection",
]
