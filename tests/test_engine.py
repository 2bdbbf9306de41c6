# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Tests for the data engine facade.

Database paths run against SQLite registered under the POSTGRESQL
provider; API paths run against httpx.MockTransport.
"""

import sqlite3

import httpx
import pytest

from quarry.cache import TTLCache
from quarry.catalog.api_source import APISource
from quarry.catalog.connectors import SQLAlchemyConnector, registry
from quarry.catalog.file.storage import LocalFileStore
from quarry.core.config import Config, ConnectionConfig, FileSourceConfig
from quarry.core.errors import APIRequestError, DataFetchError, EncryptionError, ValidationError
from quarry.core.models import DataSource, DataType, FetchOptions, FilterCondition, OrderByClause, Provider
from quarry.engine import DataEngine
from quarry.security import encrypt_json


class SQLiteConnector(SQLAlchemyConnector):
    label = "SQLite"
    drivername = "sqlite"
    driver_module = "sqlite3"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def sales_db(tmp_path, monkeypatch, sales_rows) -> ConnectionConfig:
    """SQLite file with the sales rows in a "dataset" table."""
    path = tmp_path / "sales.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE dataset (id INTEGER PRIMARY KEY, region TEXT NOT NULL, amount REAL)")
    conn.executemany(
        "INSERT INTO dataset (id, region, amount) VALUES (:id, :region, :amount)",
        sales_rows,
    )
    conn.commit()
    conn.close()
    monkeypatch.setitem(registry._CONNECTORS, Provider.POSTGRESQL, SQLiteConnector)
    return ConnectionConfig(connection_string=f"sqlite:///{path}")


def api_engine(data_dir, handler) -> DataEngine:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return DataEngine(
        Config(),
        cache=TTLCache(default_ttl=60),
        file_store=LocalFileStore(str(data_dir)),
        api_source=APISource(client=client),
    )


FILE_SOURCE = DataSource(id="f1", name="sales", type="FILE")
DB_SOURCE = DataSource(id="d1", name="warehouse", type="DATABASE", provider="POSTGRESQL")
API_SOURCE = DataSource(id="a1", name="users", type="API")

WEST_BY_AMOUNT = FetchOptions(
    filters=[FilterCondition("region", "equals", "West")],
    order_by=[OrderByClause("amount", "DESC")],
    offset=1,
    limit=2,
)


# =============================================================================
# FILE
# =============================================================================


class TestFetchFile:
    """Fetching from files parsed in memory."""

    def test_whole_file(self, engine):
        result = engine.fetch_data(FILE_SOURCE, {"filePath": "people.csv"})

        assert result.columns == ["name", "age"]
        assert result.row_count == 3
        assert result.total_count == 3
        assert result.rows[1] == {"name": "Bob", "age": None}

    def test_filter_order_and_page(self, engine):
        result = engine.fetch_data(FILE_SOURCE, {"filePath": "sales.csv"}, WEST_BY_AMOUNT)

        assert [r["id"] for r in result.rows] == ["16", "12"]
        assert result.row_count == 2
        assert result.total_count == 20
        assert result.matched_count == 5

    def test_options_as_dict(self, engine):
        result = engine.fetch_data(FILE_SOURCE, {"filePath": "sales.csv"}, {
            "columns": ["id", "missing"],
            "filters": [{"column": "amount", "operator": "lessThan", "value": 30}],
        })

        assert result.columns == ["id"]
        assert result.rows == [{"id": "1"}, {"id": "2"}]

    def test_json_file(self, engine):
        result = engine.fetch_data(FILE_SOURCE, {"filePath": "orders.json"})
        assert result.columns == ["order_id", "customer", "total", "note"]
        assert result.rows[0]["note"] is None

    def test_missing_file_wrapped(self, engine):
        with pytest.raises(DataFetchError, match="Failed to fetch data from file: File not found") as exc_info:
            engine.fetch_data(FILE_SOURCE, {"filePath": "nope.csv"})
        assert exc_info.value.source_type == "FILE"
        assert isinstance(exc_info.value.cause, FileNotFoundError)

    def test_invalid_options_not_wrapped(self, engine):
        with pytest.raises(ValidationError):
            engine.fetch_data(FILE_SOURCE, {"filePath": "sales.csv"}, FetchOptions(limit=-1))


# =============================================================================
# DATABASE
# =============================================================================


class TestFetchDatabase:
    """Fetch options pushed down as a parameterized query."""

    def test_filter_order_and_page(self, engine, sales_db):
        result = engine.fetch_data(DB_SOURCE, {"connection": sales_db.model_dump(by_alias=True)}, WEST_BY_AMOUNT)

        assert [r["id"] for r in result.rows] == [16, 12]
        assert result.columns == ["id", "region", "amount"]
        assert result.row_count == 2

    def test_flat_config_with_projection(self, engine, sales_db):
        options = FetchOptions(
            columns=["id"],
            filters=[FilterCondition("region", "in", ["North", "South"]), FilterCondition("id", "lessThan", 5)],
            order_by=[OrderByClause("id")],
        )

        result = engine.fetch_data(DB_SOURCE, {"connectionString": sales_db.connection_string}, options)

        assert result.rows == [{"id": 1}, {"id": 2}]

    def test_values_are_bound_not_inlined(self, engine, sales_db):
        options = FetchOptions(filters=[FilterCondition("region", "equals", "x' OR '1'='1")])
        result = engine.fetch_data(DB_SOURCE, {"connection": {"connectionString": sales_db.connection_string}}, options)
        assert result.rows == []

    def test_missing_table_wrapped(self, engine, sales_db):
        config = {"connection": {"connectionString": sales_db.connection_string}, "table": "nowhere"}
        with pytest.raises(DataFetchError, match="Failed to fetch data from database"):
            engine.fetch_data(DB_SOURCE, config)

    def test_provider_required(self, engine):
        source = DataSource(id="d2", name="x", type="DATABASE")
        with pytest.raises(ValidationError, match="requires a provider"):
            engine.fetch_data(source, {"connection": {"host": "db"}})

    def test_source_schema(self, engine, sales_db):
        columns = engine.get_data_source_schema(DB_SOURCE, sales_db)
        types = {c.column_name: c.data_type for c in columns}

        assert types == {"id": DataType.INTEGER, "region": DataType.STRING, "amount": DataType.DECIMAL}
        assert columns[0].is_primary_key is True
        assert columns[1].is_nullable is False

    def test_execute_query_transpiles(self, engine, sales_db):
        result = engine.execute_query(
            "POSTGRESQL",
            sales_db,
            "SELECT `id` FROM `dataset` ORDER BY `id` LIMIT 2",
            source_dialect="mysql",
        )
        assert result.rows == [{"id": 1}, {"id": 2}]

    def test_tables_and_connection_test(self, engine, sales_db):
        assert [t.name for t in engine.list_database_tables("POSTGRESQL", sales_db)] == ["dataset"]
        assert engine.test_database_connection("DATABASE", "POSTGRESQL", sales_db).success is True

    def test_unknown_provider_rejected(self, engine, sales_db):
        with pytest.raises(ValidationError, match="Unsupported database provider: ORACLE"):
            engine.execute_query("ORACLE", sales_db, "SELECT 1", source_dialect="mysql")
        with pytest.raises(ValidationError, match="Unsupported database provider: ORACLE"):
            engine.execute_query("ORACLE", sales_db, "SELECT 1")


class TestEncryptedConfigs:
    """Connection configs stored encrypted are decrypted just before use."""

    @pytest.fixture
    def key_env(self, monkeypatch):
        monkeypatch.setenv("QUARRY_ENCRYPTION_KEY", "test-secret")

    def test_encrypted_connection_value(self, engine, sales_db, key_env):
        encrypted = encrypt_json({"connectionString": sales_db.connection_string})

        result = engine.fetch_data(DB_SOURCE, {"connection": encrypted}, WEST_BY_AMOUNT)

        assert [r["id"] for r in result.rows] == [16, 12]

    def test_whole_config_encrypted(self, engine, sales_db, key_env):
        encrypted = encrypt_json({"connectionString": sales_db.connection_string, "table": "dataset"})

        result = engine.fetch_data(DB_SOURCE, encrypted, {"limit": 3}, use_cache=True)

        assert result.row_count == 3
        assert sales_db.connection_string not in str(engine.cache.get_stats().keys)

    def test_facade_methods_accept_encrypted(self, engine, sales_db, key_env):
        encrypted = encrypt_json({"connectionString": sales_db.connection_string})

        assert [t.name for t in engine.list_database_tables("POSTGRESQL", encrypted)] == ["dataset"]
        assert engine.test_database_connection("DATABASE", "POSTGRESQL", encrypted).success is True
        result = engine.execute_query("POSTGRESQL", encrypted, "SELECT COUNT(*) AS n FROM dataset")
        assert result.rows == [{"n": 20}]

    def test_key_read_from_configured_variable(self, data_dir, sales_db, monkeypatch):
        monkeypatch.setenv("WAREHOUSE_KEY", "other-secret")
        encrypted = encrypt_json({"connectionString": sales_db.connection_string}, env_var="WAREHOUSE_KEY")
        engine = DataEngine(
            Config(encryption_key_env="WAREHOUSE_KEY"),
            cache=TTLCache(default_ttl=60),
            file_store=LocalFileStore(str(data_dir)),
        )

        tables = engine.list_database_tables("POSTGRESQL", encrypted)

        assert [t.name for t in tables] == ["dataset"]

    def test_wrong_key_wrapped(self, engine, sales_db, monkeypatch):
        monkeypatch.setenv("QUARRY_ENCRYPTION_KEY", "one-secret")
        encrypted = encrypt_json({"connectionString": sales_db.connection_string})
        monkeypatch.setenv("QUARRY_ENCRYPTION_KEY", "another-secret")

        with pytest.raises(DataFetchError, match="Failed to fetch data from database") as exc_info:
            engine.fetch_data(DB_SOURCE, {"connection": encrypted})
        assert isinstance(exc_info.value.cause, EncryptionError)


# =============================================================================
# API
# =============================================================================


class TestFetchAPI:

    def test_rows_processed_in_memory(self, data_dir):
        users = [{"id": i, "active": i % 2 == 0} for i in range(1, 7)]
        engine = api_engine(data_dir, lambda request: httpx.Response(200, json={"data": users}))

        result = engine.fetch_data(
            API_SOURCE,
            {"url": "https://api.example.com/users", "dataPath": "data"},
            FetchOptions(filters=[FilterCondition("active", "equals", True)], limit=2),
        )

        assert result.columns == ["id", "active"]
        assert [r["id"] for r in result.rows] == [2, 4]
        assert result.matched_count == 3
        assert result.total_count is None

    def test_error_wrapped(self, data_dir):
        engine = api_engine(data_dir, lambda request: httpx.Response(500))

        with pytest.raises(DataFetchError, match="Failed to fetch data from API: API request failed: 500") as exc_info:
            engine.fetch_data(API_SOURCE, {"url": "https://api.example.com"})
        assert isinstance(exc_info.value.cause, APIRequestError)

    def test_schema_inferred_from_rows(self, data_dir):
        rows = [{"id": 1, "name": "A"}, {"id": 2, "name": "B", "score": 1.5}]
        engine = api_engine(data_dir, lambda request: httpx.Response(200, json=rows))

        columns = engine.get_data_source_schema(API_SOURCE, {"url": "https://api.example.com"})

        assert [c.column_name for c in columns] == ["id", "name", "score"]
        assert columns[0].data_type == DataType.INTEGER


# =============================================================================
# Dispatch and cache
# =============================================================================


class TestDispatch:

    def test_cloud_not_supported(self, engine):
        with pytest.raises(ValidationError, match="Unsupported data source type: CLOUD"):
            engine.fetch_data(DataSource(id="c", name="c", type="CLOUD"), {})

    def test_unknown_type_in_dict(self, engine):
        with pytest.raises(ValidationError, match="Unsupported data source type"):
            engine.fetch_data({"id": "x", "type": "FTP"}, {})

    def test_source_as_dict(self, engine):
        result = engine.fetch_data({"id": "f", "type": "FILE"}, {"filePath": "people.csv"})
        assert result.row_count == 3


class TestCaching:

    @pytest.fixture
    def load_calls(self, engine, monkeypatch):
        calls = []
        original = engine.files.load

        def counting_load(*args, **kwargs):
            calls.append(args)
            return original(*args, **kwargs)

        monkeypatch.setattr(engine.files, "load", counting_load)
        return calls

    def test_cached_fetch_loads_once(self, engine, load_calls):
        first = engine.fetch_data(FILE_SOURCE, {"filePath": "sales.csv"}, WEST_BY_AMOUNT, use_cache=True)
        second = engine.fetch_data(FILE_SOURCE, {"filePath": "sales.csv"}, WEST_BY_AMOUNT, use_cache=True)

        assert first == second
        assert len(load_calls) == 1

    def test_different_options_miss(self, engine, load_calls):
        engine.fetch_data(FILE_SOURCE, {"filePath": "sales.csv"}, {"limit": 1}, use_cache=True)
        engine.fetch_data(FILE_SOURCE, {"filePath": "sales.csv"}, {"limit": 2}, use_cache=True)
        assert len(load_calls) == 2

    def test_uncached_by_default(self, engine, load_calls):
        engine.fetch_data(FILE_SOURCE, {"filePath": "people.csv"})
        engine.fetch_data(FILE_SOURCE, {"filePath": "people.csv"})
        assert len(load_calls) == 2

    def test_invalidate_by_source(self, engine, load_calls):
        engine.fetch_data(FILE_SOURCE, {"filePath": "people.csv"}, use_cache=True)

        assert engine.invalidate_cache("fetch:FILE:f1") == 1
        engine.fetch_data(FILE_SOURCE, {"filePath": "people.csv"}, use_cache=True)
        assert len(load_calls) == 2

    def test_get_or_set(self, engine):
        assert engine.get_or_set_cache("k", lambda: 42) == 42
        assert engine.get_or_set_cache("k", lambda: 0) == 42

    def test_cached_result_is_a_copy(self, engine, load_calls):
        first = engine.fetch_data(FILE_SOURCE, {"filePath": "sales.csv"}, WEST_BY_AMOUNT, use_cache=True)
        first.rows[0]["region"] = "Nowhere"
        first.rows.clear()

        second = engine.fetch_data(FILE_SOURCE, {"filePath": "sales.csv"}, WEST_BY_AMOUNT, use_cache=True)

        assert len(load_calls) == 1
        assert [r["id"] for r in second.rows] == ["16", "12"]
        assert second.rows[0]["region"] == "West"

    def test_keys_carry_no_credentials(self, data_dir):
        engine = api_engine(data_dir, lambda request: httpx.Response(200, json=[{"id": 1}]))
        config = {"url": "https://api.example.com/users", "auth_type": "bearer", "auth_token": "hunter2"}

        engine.fetch_data(API_SOURCE, config, use_cache=True)
        engine.fetch_data(API_SOURCE, config, use_cache=True)

        stats = engine.cache.get_stats()
        assert stats.hits == 1
        assert len(stats.keys) == 1
        assert stats.keys[0].startswith("fetch:API:a1:")
        assert "hunter2" not in stats.keys[0]


class TestAnalysisFacade:

    def test_profile_and_schema(self, engine, data_dir):
        parsed = engine.files.load(FileSourceConfig(file_path="people.csv"))

        profile = engine.profile_data(parsed.rows, parsed.columns)
        schema = engine.detect_schema(parsed)

        assert profile.row_count == 3
        assert [c.column_name for c in schema.columns] == ["name", "age"]

    def test_sql_helpers(self, engine):
        sql = engine.build_sql_query({"from": "t", "select": ["a"], "limit": 5}, "mysql")
        assert sql == "SELECT `a` FROM `t` LIMIT 5"
        assert engine.validate_query_config({"from": ""}).valid is False
        assert engine.optimize_query("SELECT * FROM t").optimized_query.startswith("SELECT")