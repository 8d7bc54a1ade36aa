from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from oidflow.models.errors import NetworkError
from oidflow.transport import HttpxTransport


class TestHttpxTransport:
    def setup_method(self):
        self.transport = HttpxTransport()
        self.transport._http_client = AsyncMock()

    async def test_send_maps_response(self):
        # Arrange
        mock_response = MagicMock()
        mock_response.status_code = 201
        mock_response.headers = {"content-type": "application/json"}
        mock_response.content = b'{"ok": true}'
        self.transport._http_client.request.return_value = mock_response

        # Act
        response = await self.transport.send(
            "POST", "https://auth.example.com/token", {"Accept": "json"}, b"a=b"
        )

        # Assert
        assert response.status_code == 201
        assert response.is_success
        assert response.body == b'{"ok": true}'
        self.transport._http_client.request.assert_awaited_once_with(
            "POST",
            "https://auth.example.com/token",
            headers={"Accept": "json"},
            content=b"a=b",
        )

    async def test_httpx_errors_become_network_errors(self):
        self.transport._http_client.request.side_effect = httpx.ConnectTimeout(
            "timed out"
        )

        with pytest.raises(NetworkError, match="timed out"):
            await self.transport.send("GET", "https://auth.example.com/")

    async def test_close(self):
        await self.transport.close()

        self.transport._http_client.aclose.assert_awaited_once()
