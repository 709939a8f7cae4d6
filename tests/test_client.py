"""Tests for the base Client class."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from catalog_archiver.clients import (
    APIError,
    Client,
    ConnectionError,
    NotFoundError,
    RateLimitError,
)

BASE_URL = "https://catalog.example.com"


class ConcreteClient(Client):
    """Concrete implementation of Client for testing."""

    def fetch(self, *args, **kwargs):
        return self.get("/test")


def _error_response(status_code: int) -> MagicMock:
    response = MagicMock()
    response.is_success = False
    response.status_code = status_code
    response.url = f"{BASE_URL}/test"
    return response


def _mock_http(client: Client, send) -> MagicMock:
    mock_http_client = MagicMock()
    if isinstance(send, list) or isinstance(send, Exception):
        mock_http_client.send.side_effect = send
    else:
        mock_http_client.send.return_value = send
    client._client = mock_http_client
    return mock_http_client


class TestClientConfiguration:
    """Tests for Client configuration."""

    def test_requires_base_url(self):
        """Client raises ValueError if base_url is missing."""
        with pytest.raises(ValueError, match="base_url"):
            ConcreteClient({})

    def test_defaults(self):
        """Unset options fall back to their defaults."""
        client = ConcreteClient({"base_url": BASE_URL})

        assert client.base_url == BASE_URL
        assert client.timeout == 30
        assert client.retry_attempts == 3
        assert client.retry_delay == 1
        assert client.headers == {}

    def test_custom_values(self):
        """Config values override the defaults."""
        client = ConcreteClient({
            "base_url": BASE_URL,
            "timeout": 5,
            "retry_attempts": 5,
            "retry_delay": 0.5,
            "headers": {"User-Agent": "catalog-archiver/test"},
        })

        assert client.timeout == 5
        assert client.retry_attempts == 5
        assert client.retry_delay == 0.5
        assert client.headers == {"User-Agent": "catalog-archiver/test"}


class TestClientLifecycle:
    """Tests for Client lifecycle management."""

    def test_lazy_client_initialization(self):
        """httpx.Client is not created until accessed."""
        client = ConcreteClient({"base_url": BASE_URL})

        assert client._client is None

    def test_client_initialized_on_access(self):
        """httpx.Client is created with the configured base URL when accessed."""
        client = ConcreteClient({"base_url": BASE_URL})

        http_client = client.client

        assert isinstance(http_client, httpx.Client)
        assert str(http_client.base_url).startswith(BASE_URL)
        client.close()

    def test_context_manager_closes_client(self):
        """Context manager closes the httpx client on exit."""
        with ConcreteClient({"base_url": BASE_URL}) as client:
            _ = client.client

        assert client._client is None


class TestClientErrorHandling:
    """Tests for Client error handling."""

    def test_404_raises_not_found_error(self):
        """404 response raises NotFoundError carrying the URL."""
        client = ConcreteClient({"base_url": BASE_URL})

        with pytest.raises(NotFoundError) as exc_info:
            client._handle_response(_error_response(404))

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == f"{BASE_URL}/test"

    def test_429_raises_rate_limit_error(self):
        """429 response raises RateLimitError."""
        client = ConcreteClient({"base_url": BASE_URL})

        with pytest.raises(RateLimitError):
            client._handle_response(_error_response(429))

    def test_500_raises_api_error(self):
        """5xx response raises APIError."""
        client = ConcreteClient({"base_url": BASE_URL})

        with pytest.raises(APIError) as exc_info:
            client._handle_response(_error_response(500))

        assert exc_info.value.status_code == 500

    def test_error_response_is_closed(self):
        """Error responses are closed so streamed bodies are released."""
        client = ConcreteClient({"base_url": BASE_URL})
        response = _error_response(500)

        with pytest.raises(APIError):
            client._handle_response(response)

        response.close.assert_called_once()

    def test_success_returns_response(self):
        """Successful response is returned as-is."""
        client = ConcreteClient({"base_url": BASE_URL})
        response = MagicMock()
        response.is_success = True

        assert client._handle_response(response) is response


class TestClientRetryLogic:
    """Tests for Client retry behavior."""

    @patch("catalog_archiver.clients.client.sleep")
    def test_retries_on_connection_error(self, mock_sleep):
        """Client retries on connection errors."""
        client = ConcreteClient({"base_url": BASE_URL, "retry_attempts": 3})
        mock_http_client = _mock_http(client, httpx.ConnectError("Connection refused"))

        with pytest.raises(ConnectionError) as exc_info:
            client.get("/test")

        assert "Connection failed after 3 attempts" in str(exc_info.value)
        assert mock_http_client.send.call_count == 3
        assert mock_sleep.call_count == 2

    @patch("catalog_archiver.clients.client.sleep")
    def test_retries_on_timeout(self, mock_sleep):
        """Client retries on timeout errors."""
        client = ConcreteClient({"base_url": BASE_URL, "retry_attempts": 2})
        mock_http_client = _mock_http(client, httpx.TimeoutException("Request timed out"))

        with pytest.raises(ConnectionError):
            client.get("/test")

        assert mock_http_client.send.call_count == 2

    @patch("catalog_archiver.clients.client.sleep")
    def test_succeeds_after_retry(self, mock_sleep):
        """Client succeeds if a retry works."""
        client = ConcreteClient({"base_url": BASE_URL})
        success_response = MagicMock()
        success_response.is_success = True
        mock_http_client = _mock_http(
            client, [httpx.ConnectError("Connection refused"), success_response]
        )

        assert client.get("/test") is success_response
        assert mock_http_client.send.call_count == 2

    def test_no_retry_on_api_error(self):
        """Client does not retry on API errors."""
        client = ConcreteClient({"base_url": BASE_URL})
        mock_http_client = _mock_http(client, _error_response(400))

        with pytest.raises(APIError):
            client.get("/test")

        assert mock_http_client.send.call_count == 1

    def test_stream_sends_streaming_request(self):
        """stream() asks httpx not to read the body."""
        client = ConcreteClient({"base_url": BASE_URL})
        success_response = MagicMock()
        success_response.is_success = True
        mock_http_client = _mock_http(client, success_response)

        client.stream("https://cdn.example.com/1.zip")

        mock_http_client.build_request.assert_called_once_with(
            "GET", "https://cdn.example.com/1.zip"
        )
        assert mock_http_client.send.call_args.kwargs["stream"] is True


class TestClientAbstractMethods:
    """Tests for Client abstract methods."""

    def test_fetch_must_be_implemented(self):
        """Subclasses must implement fetch method."""

        class IncompleteClient(Client):
            pass

        with pytest.raises(TypeError, match="fetch"):
            IncompleteClient({"base_url": BASE_URL})
