# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""REST endpoints as row sources.

The response body must be JSON: an array of objects is used as-is, a single
object becomes one row, and data_path descends into nested responses
("data.items") before that rule applies.
"""

import base64
import json
import logging
from typing import Any, Optional

import httpx

from quarry.core.config import APISourceConfig
from quarry.core.errors import APIRequestError

logger = logging.getLogger(__name__)


def classify_http_error(status_code: int) -> tuple[bool, str]:
    """
    Classify HTTP error by status code to determine retry strategy.

    Returns:
        (retryable, retry_hint) tuple for the caller, which owns retries.
    """
    # Auth errors - NOT retryable (credentials won't change)
    if status_code == 401:
        return False, "Authentication failed. Check the API credentials."
    if status_code == 403:
        return False, "Permission denied. The API key may lack required permissions."

    if status_code == 400:
        return True, "Bad request - check query parameters and request body format."
    if status_code == 404:
        return True, "Resource not found - check the endpoint URL."
    if status_code == 405:
        return False, "HTTP method not allowed. Check the configured method (GET/POST)."
    if status_code == 422:
        return True, "Validation error - check field types and required fields."

    # Rate limiting - retryable but may need delay
    if status_code == 429:
        return True, "Rate limited. Reduce request frequency or add delays."

    # Server errors - potentially transient
    if status_code >= 500:
        if status_code == 502:
            return True, "Bad gateway (transient). The upstream server may be temporarily unavailable."
        if status_code == 503:
            return True, "Service unavailable (transient). The API may be under maintenance or overloaded."
        if status_code == 504:
            return True, "Gateway timeout (transient). The request took too long."
        return True, f"Server error {status_code} (possibly transient)."

    if status_code >= 400:
        return True, f"Client error {status_code}. Check the request parameters and format."

    return True, f"Unexpected status {status_code}."


def build_headers(config: APISourceConfig) -> dict[str, str]:
    """Build request headers including authentication."""
    headers = {"Accept": "application/json"}

    # Add custom headers from config
    headers.update(config.headers)

    # Add authentication
    if config.auth_type == "bearer" and config.auth_token:
        headers["Authorization"] = f"Bearer {config.auth_token}"
    elif config.auth_type == "basic" and config.auth_username:
        credentials = f"{config.auth_username}:{config.auth_password or ''}"
        encoded = base64.b64encode(credentials.encode()).decode()
        headers["Authorization"] = f"Basic {encoded}"
    elif config.auth_type == "api_key" and config.auth_token:
        headers[config.api_key_header] = config.auth_token

    return headers


def extract_rows(payload: Any, data_path: Optional[str] = None) -> list[Any]:
    """Row list from a decoded JSON body."""
    if data_path:
        for part in data_path.split("."):
            if isinstance(payload, dict) and part in payload:
                payload = payload[part]
            elif isinstance(payload, list) and part.isdigit() and int(part) < len(payload):
                payload = payload[int(part)]
            else:
                raise APIRequestError(f"Response has no data at path '{data_path}'", retryable=False)
    if payload is None:
        return []
    return payload if isinstance(payload, list) else [payload]


class APISource:
    """Fetches rows from HTTP endpoints.

    Usage:
        with APISource() as source:
            rows = source.fetch_rows(APISourceConfig(url="https://example.com/users"))
    """

    def __init__(self, client: Optional[httpx.Client] = None):
        """
        Args:
            client: HTTP client to reuse; one is created lazily otherwise
        """
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.Client()
        return self._client

    def close(self):
        """Close the HTTP client if this source created it."""
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def fetch_rows(self, config: APISourceConfig) -> list[dict[str, Any]]:
        """
        Request the endpoint and return its rows.

        Raises:
            APIRequestError: Transport failure, error status or non-JSON body
        """
        headers = build_headers(config)
        logger.debug(f"API {config.method} {config.url}")
        try:
            response = self.client.request(
                config.method,
                config.url,
                headers=headers,
                params=config.params or None,
                json=config.body if config.method == "POST" else None,
                timeout=config.timeout,
            )
        except httpx.RequestError as e:
            raise APIRequestError(f"Request to {config.url} failed: {e}") from e

        if response.status_code >= 400:
            retryable, retry_hint = classify_http_error(response.status_code)
            raise APIRequestError(
                f"API request failed: {response.status_code} {response.reason_phrase}. {retry_hint}",
                status_code=response.status_code,
                response_body=response.text,
                retryable=retryable,
                retry_hint=retry_hint,
            )

        try:
            payload = response.json()
        except json.JSONDecodeError as e:
            raise APIRequestError(
                f"API response is not valid JSON: {e}",
                status_code=response.status_code,
                response_body=response.text[:500],
                retryable=False,
            ) from e

        rows = extract_rows(payload, config.data_path)
        for row in rows:
            if not isinstance(row, dict):
                raise APIRequestError(
                    f"API rows must be JSON objects, got {type(row).__name__}",
                    retryable=False,
                )
        logger.debug(f"API returned {len(rows)} rows")
        return rows
