# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""File data sources: parsing, storage and the file connector."""

from .connector import FileConnector
from .parser import (
    FileMetadata,
    ParseOptions,
    detect_data_type,
    get_file_metadata,
    parse_file,
)
from .storage import BlobFileStore, FileStore, LocalFileStore, create_file_store

__all__ = [
    "BlobFileStore",
    "FileConnector",
    "FileMetadata",
    "FileStore",
    "LocalFileStore",
    "ParseOptions",
    "create_file_store",
    "detect_data_type",
    "get_file_metadata",
    "parse_file",
]
