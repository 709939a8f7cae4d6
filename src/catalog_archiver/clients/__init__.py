"""Network clients for the remote catalog."""

from .catalog_client import CatalogClient
from .client import Client
from .exceptions import (
    APIError,
    ClientError,
    ConnectionError,
    MetadataError,
    NotFoundError,
    RateLimitError,
)

__all__ = [
    "Client",
    "CatalogClient",
    "ClientError",
    "ConnectionError",
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "MetadataError",
]
