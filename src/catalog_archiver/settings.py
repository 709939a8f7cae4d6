"""Runtime settings for catalog-archiver.

Settings are built once at startup (from the environment, then overridden by
command-line flags) and handed explicitly to whatever needs them.
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field

BASE_DIR_ENV = "CATALOG_ARCHIVER_BASE_DIR"
BASE_URL_ENV = "CATALOG_ARCHIVER_BASE_URL"

DEFAULT_BASE_DIR = Path.home() / "Documents" / "catalog-archiver"
DEFAULT_USER_AGENT = "catalog-archiver/0.1"


class Settings(BaseModel):
    """Configuration shared by the store, the catalog client and the CLI.

    Attributes:
        base_dir: Root directory holding data, rendered and meta subtrees
        base_url: Catalog base URL (only needed for fetching)
        user_agent: User-Agent header for catalog requests
        timeout: Request timeout in seconds
        retry_attempts: Attempts for transient network failures
        retry_delay: Seconds between retries
    """

    base_dir: Path = DEFAULT_BASE_DIR
    base_url: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = Field(default=30.0, gt=0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, ge=0)

    @classmethod
    def from_env(cls, environ: dict | None = None, **overrides) -> "Settings":
        """Build settings from environment variables plus explicit overrides.

        Overrides whose value is None are ignored so that unset CLI flags fall
        back to the environment.
        """
        environ = os.environ if environ is None else environ
        values: dict = {}
        if base_dir := environ.get(BASE_DIR_ENV):
            values["base_dir"] = Path(base_dir).expanduser()
        if base_url := environ.get(BASE_URL_ENV):
            values["base_url"] = base_url
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def client_config(self) -> dict:
        """Config dict for the catalog client."""
        if not self.base_url:
            raise ValueError(
                f"a catalog base URL is required (--base-url or {BASE_URL_ENV})"
            )
        return {
            "base_url": self.base_url,
            "timeout": self.timeout,
            "retry_attempts": self.retry_attempts,
            "retry_delay": self.retry_delay,
            "headers": {"User-Agent": self.user_agent},
        }
