# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Error taxonomy for the data access engine.

Every failure raised by quarry derives from QuarryError so callers can
catch the whole family, while the concrete subclasses tell them what kind
of problem occurred (bad file content, bad query config, unreachable
database, ...). Nothing in the engine retries; the caller owns that policy.
"""

from typing import Optional


class QuarryError(Exception):
    """Base class for all engine errors."""


class ParseError(QuarryError):
    """File content could not be decoded (malformed CSV, JSON or Excel)."""

    def __init__(self, message: str, file_type: Optional[str] = None):
        super().__init__(message)
        self.file_type = file_type


class UnsupportedFormatError(QuarryError):
    """File extension is unknown or its format is not implemented."""

    def __init__(self, message: str, extension: Optional[str] = None):
        super().__init__(message)
        self.extension = extension


class ValidationError(QuarryError):
    """A filter, fetch option or query config is malformed.

    This is a caller error, not a data error.
    """

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class DataSourceConnectionError(QuarryError):
    """Network or authentication failure reaching a database or API."""


class DriverNotInstalledError(DataSourceConnectionError):
    """The Python driver for a database provider is not importable."""

    def __init__(self, driver: str, install_hint: str, provider: Optional[str] = None):
        label = provider or driver
        super().__init__(f"{label} driver not installed. Install with: {install_hint}")
        self.driver = driver
        self.install_hint = install_hint
        self.provider = provider


class APIRequestError(DataSourceConnectionError):
    """An HTTP data source answered with an error or an unusable body."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        retryable: bool = True,
        retry_hint: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.retryable = retryable
        self.retry_hint = retry_hint


class QueryExecutionError(QuarryError):
    """The remote engine rejected or failed the query."""

    def __init__(self, message: str, query: Optional[str] = None):
        super().__init__(message)
        self.query = query


class EncryptionError(QuarryError):
    """Key or payload problems while encrypting or decrypting secrets."""


class DataFetchError(QuarryError):
    """Wraps any failure on a fetch path with a path-specific prefix."""

    def __init__(self, message: str, source_type: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.source_type = source_type
        self.cause = cause
