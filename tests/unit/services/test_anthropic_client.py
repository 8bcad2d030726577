"""Tests for the shared Anthropic client."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pagemark.exceptions import ExternalCapabilityError
from pagemark.services import anthropic as anthropic_client


@pytest.fixture(autouse=True)
def fresh_client(monkeypatch):
    """Each test starts without a cached client."""
    monkeypatch.setattr(anthropic_client, "_client", None)


class TestClient:
    """Tests for get_client and close_client."""

    def test_client_created_once(self):
        """Test the client is built on first use and then reused."""
        with patch.object(anthropic_client, "AsyncAnthropic") as client_class:
            first = anthropic_client.get_client()
            second = anthropic_client.get_client()

        assert first is second
        client_class.assert_called_once()

    def test_sdk_retries_disabled_and_timeout_set(self, monkeypatch):
        """Test the SDK does not retry on its own and uses the configured timeout."""
        monkeypatch.setattr(anthropic_client.settings, "vision_timeout_seconds", 45.0)

        with patch.object(anthropic_client, "AsyncAnthropic") as client_class:
            anthropic_client.get_client()

        kwargs = client_class.call_args.kwargs
        assert kwargs["max_retries"] == 0
        assert kwargs["timeout"] == 45.0
        assert kwargs["api_key"] == anthropic_client.settings.anthropic_api_key

    def test_missing_api_key(self, monkeypatch):
        """Test describing without a key fails with ExternalCapabilityError."""
        monkeypatch.setattr(anthropic_client.settings, "anthropic_api_key", "")

        with patch.object(anthropic_client, "AsyncAnthropic") as client_class:
            with pytest.raises(ExternalCapabilityError):
                anthropic_client.get_client()

        client_class.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_resets_client(self):
        """Test closing releases the client so the next call builds a new one."""
        client = MagicMock()
        client.close = AsyncMock()

        with patch.object(anthropic_client, "AsyncAnthropic", return_value=client):
            anthropic_client.get_client()
            await anthropic_client.close_client()

        client.close.assert_awaited_once()
        assert anthropic_client._client is None

    @pytest.mark.asyncio
    async def test_close_without_client(self):
        """Test closing before any description is a no-op."""
        await anthropic_client.close_client()

        assert anthropic_client._client is None
