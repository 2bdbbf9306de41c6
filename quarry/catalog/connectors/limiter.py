# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Bound concurrent connections per datasource."""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from quarry.core.errors import DataSourceConnectionError

logger = logging.getLogger(__name__)


class ConnectionLimiter:
    """One bounded semaphore per datasource key.

    Connectors open a fresh connection per call; the limiter caps how many
    of those may be open against the same server at once.
    """

    def __init__(self, max_concurrent: int = 4, acquire_timeout: Optional[float] = None):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.acquire_timeout = acquire_timeout
        self._semaphores: dict[str, threading.BoundedSemaphore] = {}
        self._lock = threading.Lock()

    def _semaphore(self, key: str) -> threading.BoundedSemaphore:
        with self._lock:
            sem = self._semaphores.get(key)
            if sem is None:
                sem = threading.BoundedSemaphore(self.max_concurrent)
                self._semaphores[key] = sem
            return sem

    @contextmanager
    def acquire(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        """Hold one slot for key for the duration of the block."""
        timeout = self.acquire_timeout if timeout is None else timeout
        sem = self._semaphore(key)
        if not sem.acquire(timeout=timeout):
            raise DataSourceConnectionError(
                f"Timed out waiting for a connection slot to {key} "
                f"({self.max_concurrent} already open)"
            )
        logger.debug(f"Acquired connection slot for {key}")
        try:
            yield
        finally:
            sem.release()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._semaphores)
