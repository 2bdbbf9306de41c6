# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Translate fetch options into a query over a single dataset table.

The DATABASE fetch path has no joins, grouping or aggregates: it projects,
filters, orders and pages one table (the virtual "dataset" table unless the
source config names another).
"""

from dataclasses import replace
from typing import Any

from quarry.core.models import FetchOptions
from quarry.sql.builder import (
    DialectLike,
    QueryBuilderConfig,
    build_parameterized_query,
)
from quarry.sql.dialects import SQLDialect

DEFAULT_DATASET_TABLE = "dataset"


def dataset_query_config(options: FetchOptions, table: str = DEFAULT_DATASET_TABLE) -> QueryBuilderConfig:
    """Query description equivalent to the fetch options."""
    # Filters on this path are always AND-ed
    filters = [replace(c, logical_operator=None) for c in options.filters]
    return QueryBuilderConfig(
        from_table=table,
        select=list(options.columns) or ["*"],
        where=filters,
        order_by=list(options.order_by),
        limit=options.limit,
        offset=options.offset,
    )


def build_dataset_query(
    options: FetchOptions,
    table: str = DEFAULT_DATASET_TABLE,
    dialect: DialectLike = SQLDialect.POSTGRESQL,
) -> tuple[str, dict[str, Any]]:
    """
    Build a parameterized SELECT over the dataset table.

    Returns:
        (sql, params) with named binds
    """
    options.validate()
    return build_parameterized_query(dataset_query_config(options, table), dialect)
