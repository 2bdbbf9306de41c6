# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""File-based data source connector.

Loads a file's bytes from a FileStore and decodes them with the parser,
so callers deal in FileSourceConfig rather than paths and buffers.
"""

import logging
from typing import Optional

from quarry.catalog.file.parser import (
    FileMetadata,
    ParseOptions,
    get_file_metadata,
    parse_file,
)
from quarry.catalog.file.storage import FileStore, LocalFileStore
from quarry.core.config import FileSourceConfig
from quarry.core.models import ParsedFileData

logger = logging.getLogger(__name__)


class FileConnector:
    """Connector for file-based data sources (CSV, Excel, JSON)."""

    def __init__(self, store: Optional[FileStore] = None):
        self.store = store or LocalFileStore()

    def _file_name(self, file_config: FileSourceConfig) -> str:
        # An explicit type override wins over the stored name's extension
        if file_config.file_type:
            stem = file_config.resolved_name.rsplit(".", 1)[0]
            return f"{stem}.{file_config.file_type.lower()}"
        return file_config.resolved_name

    def read(self, file_config: FileSourceConfig) -> bytes:
        return self.store.read_bytes(file_config.file_path)

    def load(
        self,
        file_config: FileSourceConfig,
        options: Optional[ParseOptions] = None,
    ) -> ParsedFileData:
        """Read and parse the file described by file_config."""
        buffer = self.read(file_config)
        logger.debug(f"Loaded {len(buffer)} bytes from {file_config.file_path}")
        return parse_file(buffer, self._file_name(file_config), options)

    def metadata(self, file_config: FileSourceConfig) -> FileMetadata:
        return get_file_metadata(self.read(file_config), self._file_name(file_config))
