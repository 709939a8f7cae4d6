"""Tests for runtime settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from catalog_archiver.settings import BASE_DIR_ENV, BASE_URL_ENV, DEFAULT_BASE_DIR, Settings


class TestSettings:
    """Tests for Settings construction."""

    def test_defaults(self):
        """Without environment or overrides the defaults apply."""
        settings = Settings.from_env({})

        assert settings.base_dir == DEFAULT_BASE_DIR
        assert settings.base_url is None
        assert settings.retry_attempts == 3

    def test_environment(self, tmp_path):
        """Environment variables set the base dir and URL."""
        settings = Settings.from_env({
            BASE_DIR_ENV: str(tmp_path),
            BASE_URL_ENV: "https://catalog.example.com",
        })

        assert settings.base_dir == tmp_path
        assert settings.base_url == "https://catalog.example.com"

    def test_overrides_win_over_environment(self, tmp_path):
        """Explicit overrides take precedence; None overrides are ignored."""
        settings = Settings.from_env(
            {BASE_DIR_ENV: "/from/env", BASE_URL_ENV: "https://env.example.com"},
            base_dir=tmp_path,
            base_url=None,
        )

        assert settings.base_dir == tmp_path
        assert settings.base_url == "https://env.example.com"

    def test_invalid_values(self):
        """Out-of-range values are rejected."""
        with pytest.raises(ValidationError):
            Settings(timeout=0)
        with pytest.raises(ValidationError):
            Settings(retry_attempts=0)


class TestClientConfig:
    """Tests for the catalog client config."""

    def test_client_config(self):
        """client_config carries connection settings and the User-Agent."""
        settings = Settings(base_url="https://catalog.example.com", timeout=5)

        config = settings.client_config()

        assert config["base_url"] == "https://catalog.example.com"
        assert config["timeout"] == 5
        assert config["headers"]["User-Agent"] == settings.user_agent

    def test_client_config_requires_base_url(self):
        """Fetching needs a base URL."""
        with pytest.raises(ValueError, match=BASE_URL_ENV):
            Settings(base_dir=Path("/tmp")).client_config()
