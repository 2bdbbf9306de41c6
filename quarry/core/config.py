# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Configuration loading with Pydantic validation and env var substitution."""

import os
import re
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy.engine import URL, make_url

from quarry.core.models import Provider, SourceType


class ConnectionConfig(BaseModel):
    """Decrypted connection settings for a database or API source.

    Callers are expected to decrypt secrets before handing this over; the
    engine never sees ciphertext here.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    ssl: bool = False
    connection_string: Optional[str] = Field(default=None, alias="connectionString")
    schema_name: Optional[str] = Field(default=None, alias="schema")
    options: dict[str, Any] = Field(default_factory=dict)
    connect_timeout: int = Field(default=10, alias="connectTimeout")

    # API probes reuse this model
    api_url: Optional[str] = Field(default=None, alias="apiUrl")

    def get_connection_uri(self, drivername: str) -> str:
        """
        Build an SQLAlchemy URI for this connection.

        An explicit connection string wins. Its scheme is replaced with the
        given driver so "postgresql://..." strings still pick the right DBAPI.

        Args:
            drivername: SQLAlchemy driver name, e.g. "postgresql+psycopg2"

        Returns:
            Connection URI with credentials applied
        """
        if self.connection_string:
            url = make_url(self.connection_string)
            if "+" not in url.drivername:
                url = url.set(drivername=drivername)
            return url.render_as_string(hide_password=False)

        query = {k: str(v) for k, v in self.options.items()}
        url = URL.create(
            drivername,
            username=self.username,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
            query=query,
        )
        return url.render_as_string(hide_password=False)

    def connection_key(self) -> str:
        """Identify the target server for connection limiting."""
        if self.connection_string:
            url = make_url(self.connection_string)
            return f"{url.host}:{url.port}/{url.database}"
        if self.api_url:
            return self.api_url
        return f"{self.host}:{self.port}/{self.database}"


class FileSourceConfig(BaseModel):
    """Where a file data source's bytes live."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    file_path: str = Field(alias="filePath")
    file_name: Optional[str] = Field(default=None, alias="fileName")
    file_type: Optional[str] = Field(default=None, alias="fileType")

    @property
    def resolved_name(self) -> str:
        """File name used for extension dispatch."""
        return self.file_name or Path(self.file_path).name


class APISourceConfig(BaseModel):
    """REST endpoint returning JSON rows."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str
    method: Literal["GET", "POST"] = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    body: Optional[Any] = None

    # Authentication (same shapes as the connection probe)
    auth_type: Optional[Literal["bearer", "basic", "api_key"]] = None
    auth_token: Optional[str] = None
    auth_username: Optional[str] = None
    auth_password: Optional[str] = None
    api_key_header: str = "X-API-Key"

    # Dotted path to the row array in a nested response, e.g. "data.items"
    data_path: Optional[str] = Field(default=None, alias="dataPath")
    timeout: float = 30.0


class DatabaseSourceConfig(BaseModel):
    """Connection plus the table the DATABASE fetch path queries."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    table: str = "dataset"


class SourceDefinition(BaseModel):
    """A named data source as it appears in a YAML config file."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: SourceType
    provider: Optional[Provider] = None
    description: str = ""
    file: Optional[FileSourceConfig] = None
    database: Optional[DatabaseSourceConfig] = None
    api: Optional[APISourceConfig] = None

    @model_validator(mode="after")
    def _check_section(self) -> "SourceDefinition":
        required = {
            SourceType.FILE: "file",
            SourceType.DATABASE: "database",
            SourceType.API: "api",
        }.get(self.type)
        if required and getattr(self, required) is None:
            raise ValueError(f"{self.type.value} source requires a '{required}' section")
        if self.type == SourceType.DATABASE and self.provider is None:
            raise ValueError("DATABASE source requires a provider")
        return self

    def source_config(self):
        """Config object the engine's fetch path for this type expects."""
        if self.type == SourceType.FILE:
            return self.file
        if self.type == SourceType.DATABASE:
            return self.database
        return self.api


class CacheConfig(BaseModel):
    default_ttl_seconds: float = 300.0
    sweep_interval_seconds: float = 300.0
    max_entries: int = 10000


class StorageConfig(BaseModel):
    """Where raw file bytes are read from."""
    mode: Optional[Literal["local", "blob"]] = None  # None: pick from environment
    base_dir: Optional[str] = None
    blob_base_url: Optional[str] = None
    blob_token: Optional[str] = None
    timeout: float = 30.0


class SchemaDetectionConfig(BaseModel):
    relationship_max_columns: int = 50
    relationship_sample_rows: int = 10000


class OptimizerConfig(BaseModel):
    large_table_threshold: int = 10000
    default_limit: int = 1000
    default_row_estimate: int = 1000


class ConnectorConfig(BaseModel):
    max_concurrent_connections: int = 4


class Config(BaseModel):
    """Root configuration model."""
    model_config = {"extra": "ignore"}

    environment: str = "development"
    sources: dict[str, SourceDefinition] = Field(default_factory=dict)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    schema_detection: SchemaDetectionConfig = Field(default_factory=SchemaDetectionConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    connectors: ConnectorConfig = Field(default_factory=ConnectorConfig)
    encryption_key_env: str = "QUARRY_ENCRYPTION_KEY"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """
        Load config from YAML file with env var substitution.

        Args:
            path: Path to the config YAML file

        Returns:
            Validated Config object
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            raw_content = f.read()

        # Substitute environment variables: ${VAR_NAME}
        substituted = _substitute_env_vars(raw_content)

        data = yaml.safe_load(substituted) or {}
        return cls.model_validate(data)

    @property
    def storage_mode(self) -> str:
        if self.storage.mode:
            return self.storage.mode
        return "local" if self.environment == "development" else "blob"

    def get_source(self, name: str) -> SourceDefinition:
        """Get a source definition by name."""
        if name not in self.sources:
            available = ", ".join(sorted(self.sources)) or "none"
            raise KeyError(f"Unknown source '{name}' (available: {available})")
        return self.sources[name]


def _substitute_env_vars(content: str) -> str:
    """Replace ${VAR_NAME} with environment variable values."""
    pattern = re.compile(r'\$\{([^}]+)\}')

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ValueError(f"Environment variable not set: {var_name}")
        return value

    return pattern.sub(replacer, content)
