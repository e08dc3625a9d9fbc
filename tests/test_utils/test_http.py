from __future__ import annotations

import httpx
import pytest
from typing import Any
from unittest.mock import AsyncMock, patch

from minipm.utils.http import HTTPClient
from minipm.exceptions import NetworkError, TransientIOError

URL = "https://registry.example.test/left-pad"


def _response(status: int, **kwargs: Any) -> httpx.Response:
    """Build a real httpx response bound to a request, so raise_for_status works."""
    return httpx.Response(status, request=httpx.Request("GET", URL), **kwargs)


@pytest.mark.unit
class TestHTTPClientInit:
    """Tests for HTTPClient initialization and configuration."""

    def test_default_values(self) -> None:
        client = HTTPClient()

        assert client.timeout == 30
        assert client.max_retries == 3
        assert client.rate_limit_delay == 0.0
        assert client.verify_ssl is True
        assert client.max_concurrency == 10
        assert client.user_agent.startswith("minipm/")

    def test_custom_user_agent(self) -> None:
        assert HTTPClient(user_agent="custom-agent/1.0").user_agent == "custom-agent/1.0"

    @pytest.mark.asyncio
    async def test_context_manager_opens_and_closes(self) -> None:
        client = HTTPClient()

        async with client:
            assert client._client is not None

        assert client._client is None


@pytest.mark.unit
class TestHTTPClientRequestWithRetry:
    """Tests for failure classification in HTTPClient._request_with_retry."""

    @pytest.mark.asyncio
    async def test_successful_request(self) -> None:
        client = HTTPClient(max_retries=1)

        with patch.object(
            httpx.AsyncClient, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(200)

            async with client:
                response = await client._request_with_retry("GET", URL)

        assert response.status_code == 200
        assert mock_request.call_count == 1

    @pytest.mark.asyncio
    async def test_strips_quotes_and_whitespace(self) -> None:
        client = HTTPClient(max_retries=0)

        with patch.object(
            httpx.AsyncClient, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(200)

            async with client:
                await client._request_with_retry("GET", f'  "{URL}" ')

        assert mock_request.call_args[0][1] == URL

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403, 404])
    async def test_4xx_is_permanent(self, status: int) -> None:
        """Client errors are raised immediately as plain NetworkError."""
        client = HTTPClient(max_retries=3)

        with patch.object(
            httpx.AsyncClient, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(status, text="nope")

            async with client:
                with pytest.raises(NetworkError) as exc_info:
                    await client._request_with_retry("GET", URL)

        assert not isinstance(exc_info.value, TransientIOError)
        assert exc_info.value.status_code == status
        assert mock_request.call_count == 1

    @pytest.mark.asyncio
    async def test_5xx_is_transient(self) -> None:
        client = HTTPClient(max_retries=0)

        with patch.object(
            httpx.AsyncClient, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(503)

            async with client:
                with pytest.raises(TransientIOError) as exc_info:
                    await client._request_with_retry("GET", URL)

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self) -> None:
        client = HTTPClient(max_retries=0)

        with patch.object(
            httpx.AsyncClient, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.side_effect = httpx.ReadTimeout("timed out")

            async with client:
                with pytest.raises(TransientIOError) as exc_info:
                    await client._request_with_retry("GET", URL)

        assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)

    @pytest.mark.asyncio
    async def test_connection_error_retried_then_succeeds(self) -> None:
        client = HTTPClient(max_retries=2)

        with patch.object(
            httpx.AsyncClient, "request", new_callable=AsyncMock
        ) as mock_request, patch(
            "minipm.utils.http.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            mock_request.side_effect = [
                httpx.ConnectError("refused"),
                _response(502),
                _response(200),
            ]

            async with client:
                response = await client._request_with_retry("GET", URL)

        assert response.status_code == 200
        assert mock_request.call_count == 3
        assert mock_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_zero_retries_makes_single_attempt(self) -> None:
        client = HTTPClient(max_retries=0)

        with patch.object(
            httpx.AsyncClient, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.side_effect = httpx.ConnectError("refused")

            async with client:
                with pytest.raises(TransientIOError):
                    await client._request_with_retry("GET", URL)

        assert mock_request.call_count == 1

    @pytest.mark.asyncio
    async def test_429_honours_retry_after(self) -> None:
        client = HTTPClient(max_retries=0)

        with patch.object(
            httpx.AsyncClient, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.side_effect = [
                _response(429, headers={"Retry-After": "0"}),
                _response(200),
            ]

            async with client:
                response = await client._request_with_retry("GET", URL)

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_429_limit_exceeded_is_transient(self) -> None:
        client = HTTPClient(max_retries=10)
        client._max_429_retries = 1

        with patch.object(
            httpx.AsyncClient, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(429, headers={"Retry-After": "0"})

            async with client:
                with pytest.raises(TransientIOError) as exc_info:
                    await client._request_with_retry("GET", URL)

        assert exc_info.value.status_code == 429


@pytest.mark.unit
class TestHTTPClientBodies:
    """Tests for get_json and get_bytes."""

    @pytest.mark.asyncio
    async def test_get_json(self) -> None:
        client = HTTPClient()

        with patch.object(HTTPClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _response(200, json={"name": "left-pad"})

            assert await client.get_json(URL) == {"name": "left-pad"}

    @pytest.mark.asyncio
    async def test_get_json_invalid_body(self) -> None:
        client = HTTPClient()

        with patch.object(HTTPClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _response(200, text="<html>")

            with pytest.raises(NetworkError, match="Invalid JSON"):
                await client.get_json(URL)

    @pytest.mark.asyncio
    async def test_get_json_requires_object(self) -> None:
        client = HTTPClient()

        with patch.object(HTTPClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _response(200, json=["a", "b"])

            with pytest.raises(NetworkError, match="Expected JSON object"):
                await client.get_json(URL)

    @pytest.mark.asyncio
    async def test_get_bytes(self) -> None:
        client = HTTPClient()

        with patch.object(HTTPClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _response(200, content=b"\x1f\x8btarball")

            assert await client.get_bytes(URL) == b"\x1f\x8btarball"
