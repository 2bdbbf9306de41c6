# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Shared fixtures: small CSV files, row sets and an engine over tmp_path."""

import json
from pathlib import Path

import pytest

from quarry.cache import TTLCache
from quarry.catalog.file.storage import LocalFileStore
from quarry.core.config import Config
from quarry.engine import DataEngine


# =============================================================================
# Sample data
# =============================================================================

PEOPLE_CSV = b"name,age\nAlice,30\nBob,\nCarol,25\n"

REGIONS = ("North", "South", "East", "West")


def make_sales_rows(count: int = 20) -> list[dict]:
    """Rows with an id, a cycling region and an amount of id * 10."""
    return [
        {"id": i, "region": REGIONS[(i - 1) % 4], "amount": i * 10}
        for i in range(1, count + 1)
    ]


def sales_csv(count: int = 20) -> bytes:
    lines = ["id,region,amount"]
    lines += [f"{r['id']},{r['region']},{r['amount']}" for r in make_sales_rows(count)]
    return ("\n".join(lines) + "\n").encode()


@pytest.fixture
def people_csv() -> bytes:
    return PEOPLE_CSV


@pytest.fixture
def sales_rows() -> list[dict]:
    return make_sales_rows()


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """Directory holding people.csv, sales.csv and orders.json."""
    (tmp_path / "people.csv").write_bytes(PEOPLE_CSV)
    (tmp_path / "sales.csv").write_bytes(sales_csv())
    (tmp_path / "orders.json").write_text(json.dumps([
        {"order_id": 1, "customer": "Alice", "total": 12.5},
        {"order_id": 2, "customer": "Bob", "total": 7.25, "note": "gift"},
    ]))
    return tmp_path


# =============================================================================
# Engine
# =============================================================================

@pytest.fixture
def engine(data_dir):
    """Engine reading files relative to data_dir, with a fresh cache."""
    engine = DataEngine(
        Config(),
        cache=TTLCache(default_ttl=60),
        file_store=LocalFileStore(str(data_dir)),
    )
    yield engine
    engine.close()
