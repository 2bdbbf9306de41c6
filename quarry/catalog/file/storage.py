# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Byte stores for uploaded files.

Development reads from the local filesystem; other environments fetch the
object from blob storage over HTTP by its storage key.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import httpx

from quarry.core.config import Config, StorageConfig
from quarry.core.errors import DataSourceConnectionError

logger = logging.getLogger(__name__)


class FileStore(ABC):
    """Source of raw file bytes keyed by path or storage key."""

    @abstractmethod
    def read_bytes(self, key: str) -> bytes:
        """Return the full content stored under key."""
        ...


class LocalFileStore(FileStore):
    """Reads files from disk, optionally relative to a base directory."""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir) if base_dir else None

    def resolve(self, key: str) -> Path:
        path = Path(key)
        if self.base_dir is not None and not path.is_absolute():
            path = self.base_dir / path
        return path

    def read_bytes(self, key: str) -> bytes:
        path = self.resolve(key)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        return path.read_bytes()


class BlobFileStore(FileStore):
    """Fetches objects from an HTTP blob endpoint: GET {base_url}/{key}."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = client

    def _headers(self) -> dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def read_bytes(self, key: str) -> bytes:
        # Keys that are already absolute URLs are fetched as-is
        url = key if key.startswith(("http://", "https://")) else f"{self.base_url}/{key.lstrip('/')}"
        logger.debug(f"Fetching blob {url}")
        try:
            if self._client is not None:
                response = self._client.get(url, headers=self._headers(), timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.get(url, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DataSourceConnectionError(
                f"Blob storage returned HTTP {e.response.status_code} for '{key}'"
            ) from e
        except httpx.RequestError as e:
            raise DataSourceConnectionError(f"Blob storage unreachable: {e}") from e
        return response.content


def create_file_store(config: Config) -> FileStore:
    """Pick the file store for the configured environment."""
    storage: StorageConfig = config.storage
    if config.storage_mode == "local":
        return LocalFileStore(storage.base_dir)
    if not storage.blob_base_url:
        raise ValueError("storage.blob_base_url is required outside development")
    return BlobFileStore(storage.blob_base_url, storage.blob_token, storage.timeout)
