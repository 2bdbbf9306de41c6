"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from quarry.core.config import (
    APISourceConfig,
    Config,
    ConnectionConfig,
    DatabaseSourceConfig,
    FileSourceConfig,
)
from quarry.core.models import DataSource, FetchOptions, Provider, SourceType


class TestConfigLoading:
    """Tests for YAML config loading."""

    def test_load_minimal_config(self, tmp_path):
        """Test loading a minimal config."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("environment: development\n")

        config = Config.from_yaml(config_file)

        assert config.environment == "development"
        assert config.sources == {}
        assert config.cache.default_ttl_seconds == 300.0
        assert config.connectors.max_concurrent_connections == 4

    def test_load_sources(self, tmp_path):
        """Test loading file, database and API sources."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("""
sources:
  sales:
    type: FILE
    file:
      filePath: data/sales.csv
  warehouse:
    type: DATABASE
    provider: POSTGRESQL
    database:
      table: orders
      connection:
        host: db.internal
        port: 5432
        database: analytics
        username: reader
        schema: reporting
  users:
    type: API
    api:
      url: https://api.example.com/users
      auth_type: bearer
      auth_token: abc
      dataPath: data.items
""")

        config = Config.from_yaml(config_file)

        sales = config.get_source("sales")
        assert sales.type == SourceType.FILE
        assert isinstance(sales.source_config(), FileSourceConfig)
        assert sales.file.file_path == "data/sales.csv"

        warehouse = config.get_source("warehouse")
        assert warehouse.provider == Provider.POSTGRESQL
        assert warehouse.database.table == "orders"
        assert warehouse.database.connection.schema_name == "reporting"

        users = config.get_source("users")
        assert isinstance(users.source_config(), APISourceConfig)
        assert users.api.data_path == "data.items"

    def test_env_var_substitution(self, tmp_path, monkeypatch):
        """Test that ${VAR} references are substituted."""
        monkeypatch.setenv("QUARRY_TEST_DB_PASSWORD", "s3cret")
        config_file = tmp_path / "config.yaml"
        config_file.write_text("""
sources:
  db:
    type: DATABASE
    provider: MYSQL
    database:
      connection:
        host: localhost
        password: ${QUARRY_TEST_DB_PASSWORD}
""")

        config = Config.from_yaml(config_file)

        assert config.get_source("db").database.connection.password == "s3cret"

    def test_missing_env_var_raises(self, tmp_path, monkeypatch):
        """Test that missing env vars raise an error."""
        monkeypatch.delenv("QUARRY_TEST_UNSET", raising=False)
        config_file = tmp_path / "config.yaml"
        config_file.write_text("encryption_key_env: ${QUARRY_TEST_UNSET}\n")

        with pytest.raises(ValueError, match="QUARRY_TEST_UNSET"):
            Config.from_yaml(config_file)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.from_yaml(tmp_path / "nope.yaml")

    def test_database_source_requires_provider(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("""
sources:
  db:
    type: DATABASE
    database:
      connection: {host: localhost}
""")
        with pytest.raises(PydanticValidationError):
            Config.from_yaml(config_file)

    def test_source_section_required(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("sources:\n  f:\n    type: FILE\n")
        with pytest.raises(PydanticValidationError):
            Config.from_yaml(config_file)

    def test_unknown_source(self):
        with pytest.raises(KeyError, match="Unknown source"):
            Config().get_source("missing")

    def test_storage_mode_follows_environment(self):
        assert Config(environment="development").storage_mode == "local"
        assert Config(environment="production").storage_mode == "blob"


class TestConnectionConfig:
    """Tests for connection URIs and keys."""

    def test_uri_from_parts(self):
        config = ConnectionConfig(
            host="db", port=5432, database="app", username="u", password="p@ss"
        )
        uri = config.get_connection_uri("postgresql+psycopg2")
        assert uri == "postgresql+psycopg2://u:p%40ss@db:5432/app"

    def test_connection_string_gets_driver(self):
        config = ConnectionConfig(connection_string="postgresql://u:p@db/app")
        assert config.get_connection_uri("postgresql+psycopg2").startswith("postgresql+psycopg2://")

    def test_explicit_driver_kept(self):
        config = ConnectionConfig(connectionString="mysql+mysqldb://u:p@db/app")
        assert config.get_connection_uri("mysql+pymysql").startswith("mysql+mysqldb://")

    def test_connection_key(self):
        assert ConnectionConfig(host="db", port=1, database="x").connection_key() == "db:1/x"
        assert ConnectionConfig(api_url="https://api").connection_key() == "https://api"

    def test_camel_case_aliases(self):
        config = DatabaseSourceConfig.model_validate({
            "connection": {"connectionString": "sqlite://", "connectTimeout": 3}
        })
        assert config.connection.connect_timeout == 3
        assert config.table == "dataset"


class TestModels:

    def test_data_source_coerces_enums(self):
        source = DataSource(id="1", name="s", type="DATABASE", provider="MYSQL")
        assert source.type == SourceType.DATABASE
        assert source.provider == Provider.MYSQL

    def test_data_source_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            DataSource(id="1", name="s", type="FTP")

    def test_fetch_options_from_dict(self):
        options = FetchOptions.from_dict({
            "limit": 5,
            "filters": [{"column": "a", "operator": "in", "value": [1, 2]}],
            "orderBy": [{"column": "a", "direction": "desc"}],
        })
        assert options.limit == 5
        assert options.filters[0].value == [1, 2]
        assert options.to_dict()["order_by"] == [{"column": "a", "direction": "DESC"}]
