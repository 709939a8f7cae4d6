"""Base client for catalog requests."""

import logging
from abc import ABC, abstractmethod
from time import sleep
from typing import Any

import httpx

from .exceptions import (
    APIError,
    ConnectionError,
    NotFoundError,
    RateLimitError,
)

logger = logging.getLogger(__name__)


class Client(ABC):
    """Base class for network clients.

    Provides a lazily created httpx.Client with context manager support and
    retries for transient connection failures, configured from a dict.

    Config keys:
        base_url (required): Base URL for all requests
        timeout: Request timeout in seconds (default: 30)
        retry_attempts: Attempts for transient failures (default: 3)
        retry_delay: Delay between retries in seconds (default: 1)
        headers: Additional headers to include in requests
    """

    def __init__(self, config: dict):
        if "base_url" not in config:
            raise ValueError("config must include 'base_url'")

        self._config = config
        self._client: httpx.Client | None = None

    @property
    def base_url(self) -> str:
        return str(self._config["base_url"])

    @property
    def timeout(self) -> float:
        return float(self._config.get("timeout", 30))

    @property
    def retry_attempts(self) -> int:
        return int(self._config.get("retry_attempts", 3))

    @property
    def retry_delay(self) -> float:
        return float(self._config.get("retry_delay", 1))

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._config.get("headers", {}))

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialized httpx client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
                follow_redirects=True,
            )
        return self._client

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Map HTTP error statuses to exceptions.

        Streamed responses are closed before raising.

        Raises:
            NotFoundError: For 404 responses
            RateLimitError: For 429 responses
            APIError: For other non-2xx responses
        """
        if response.is_success:
            return response

        response.close()
        status_code = response.status_code
        url = str(response.url)

        if status_code == 404:
            raise NotFoundError(f"Resource not found: {url}", url=url)
        elif status_code == 429:
            raise RateLimitError(f"Rate limit exceeded: {url}", url=url)
        else:
            raise APIError(f"API error {status_code}: {url}", status_code=status_code, url=url)

    def _send(self, method: str, path: str, stream: bool = False, **kwargs) -> httpx.Response:
        """Send a request, retrying on connection failures and timeouts.

        Args:
            method: HTTP method
            path: URL path relative to base_url, or an absolute URL
            stream: Leave the body unread; the caller must close the response
            **kwargs: Passed to httpx.Client.build_request

        Raises:
            ConnectionError: If every attempt fails at the network level
            APIError: If the catalog answers with a non-2xx status
        """
        last_exception: Exception | None = None

        for attempt in range(self.retry_attempts):
            try:
                request = self.client.build_request(method, path, **kwargs)
                response = self.client.send(request, stream=stream)
                return self._handle_response(response)
            except httpx.ConnectError as e:
                last_exception = e
                logger.warning(
                    f"Connection error (attempt {attempt + 1}/{self.retry_attempts}): {e}"
                )
            except httpx.TimeoutException as e:
                last_exception = e
                logger.warning(
                    f"Timeout (attempt {attempt + 1}/{self.retry_attempts}): {e}"
                )
            if attempt < self.retry_attempts - 1:
                sleep(self.retry_delay)

        msg = f"Connection failed after {self.retry_attempts} attempts: {path}"
        raise ConnectionError(msg, url=str(path)) from last_exception

    def get(self, path: str, **kwargs) -> httpx.Response:
        return self._send("GET", path, **kwargs)

    def stream(self, path: str, **kwargs) -> httpx.Response:
        """GET with a lazily read body. Close the response when done."""
        return self._send("GET", path, stream=True, **kwargs)

    @abstractmethod
    def fetch(self, *args, **kwargs) -> Any:
        """Fetch data from the catalog. Must be implemented by subclasses."""
        pass
