"""Shared AsyncAnthropic client for visual descriptions.

The client is created lazily on the first description, so conversions that
never describe an image need no API key.
"""

import logging

from anthropic import AsyncAnthropic

from pagemark.config import settings
from pagemark.exceptions import ExternalCapabilityError

logger = logging.getLogger(__name__)

_client: AsyncAnthropic | None = None


def get_client() -> AsyncAnthropic:
    """
    Get or create the process-wide client.

    The SDK's own retries are disabled; AnthropicVisionDescriber retries
    transient failures itself.

    Raises:
        ExternalCapabilityError: If no API key is configured
    """
    global _client
    if _client is None:
        if not settings.anthropic_api_key:
            raise ExternalCapabilityError("Visual description needs ANTHROPIC_API_KEY to be set")
        _client = AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            max_retries=0,
            timeout=settings.vision_timeout_seconds,
        )
        logger.debug(f"Created Anthropic client (timeout {settings.vision_timeout_seconds}s)")
    return _client


async def close_client() -> None:
    """Close the client if one was created; the CLI calls this on exit."""
    global _client
    if _client is not None:
        await _client.close()
        _client = None
