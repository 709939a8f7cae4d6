"""Exceptions raised by the catalog client.

All of them are NetworkErrors, so the ingestion coordinator treats any of
them as a failed payload fetch.
"""

from catalog_archiver.errors import NetworkError


class ClientError(NetworkError):
    """Base exception for all catalog client errors.

    Attributes:
        url: The URL being requested, when known
    """

    def __init__(self, message: str, url: str | None = None, *args, **kwargs):
        self.url = url
        super().__init__(message, *args, **kwargs)


class ConnectionError(ClientError):
    """Raised when the catalog cannot be reached after all retries."""

    pass


class APIError(ClientError):
    """Raised when the catalog answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int, url: str | None = None):
        self.status_code = status_code
        super().__init__(message, url=url)


class RateLimitError(APIError):
    """Raised on 429 responses."""

    def __init__(self, message: str = "Rate limit exceeded", url: str | None = None):
        super().__init__(message, status_code=429, url=url)


class NotFoundError(APIError):
    """Raised on 404 responses."""

    def __init__(self, message: str = "Resource not found", url: str | None = None):
        super().__init__(message, status_code=404, url=url)


class MetadataError(ClientError):
    """Raised when an item's metadata or page cannot be understood.

    Attributes:
        errors: Individual validation problems
    """

    def __init__(
        self, message: str, errors: list | None = None, url: str | None = None
    ):
        self.errors = errors or []
        super().__init__(message, url=url)
