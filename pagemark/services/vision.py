"""Visual description of images and rendered pages using Claude Vision."""

import base64
import logging
from typing import cast

import anthropic
from anthropic.types import ImageBlockParam, TextBlockParam
from anthropic.types import TextBlock as AnthropicTextBlock
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from pagemark.config import settings
from pagemark.enums import DescriptionPurpose
from pagemark.exceptions import ExternalCapabilityError
from pagemark.models.options import ImagePayload
from pagemark.services.anthropic import get_client
from pagemark.services.prompts import (
    FILE_CONTEXT_PROMPT,
    IMAGE_DESCRIPTION_PROMPT,
    PAGE_CONVERSION_PROMPT,
)

logger = logging.getLogger(__name__)

# Transport-level failures worth another attempt; everything else fails fast
TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)

__all__ = ["AnthropicVisionDescriber", "ImagePayload"]


class AnthropicVisionDescriber:
    """
    Visual-description capability backed by the Anthropic Messages API.

    Instances are awaitable callables: ``await describer(payload)`` returns
    the description text or raises ExternalCapabilityError. Transient
    transport errors are retried here; callers never retry.
    """

    def __init__(
        self,
        model: str | None = None,
        max_tokens: int | None = None,
        max_attempts: int = 3,
        retry_wait: wait_base | None = None,
    ):
        """
        Initialize the describer.

        Args:
            model: Claude model to use (defaults to claude_vision_model)
            max_tokens: Response token limit (defaults to vision_max_tokens)
            max_attempts: Attempts per description, including the first
            retry_wait: Wait strategy between attempts
        """
        self.model = model or settings.claude_vision_model
        self.max_tokens = max_tokens or settings.vision_max_tokens
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=30)

    def _prompt(self, payload: ImagePayload) -> str:
        prompt = (
            PAGE_CONVERSION_PROMPT
            if payload.purpose == DescriptionPurpose.PAGE
            else IMAGE_DESCRIPTION_PROMPT
        )
        if payload.file_name:
            prompt = FILE_CONTEXT_PROMPT.format(file_name=payload.file_name) + prompt
        return prompt

    async def __call__(self, payload: ImagePayload) -> str:
        client = get_client()

        # Normalize mime type for Claude API
        media_type = payload.mime_type
        if media_type == "image/jpg":
            media_type = "image/jpeg"

        image_block: ImageBlockParam = {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": media_type,  # type: ignore[typeddict-item]
                "data": base64.b64encode(payload.data).decode("utf-8"),
            },
        }
        text_block: TextBlockParam = {"type": "text", "text": self._prompt(payload)}

        logger.info(f"Describing {payload.purpose} {payload.file_name or ''} with {self.model}")

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                wait=self.retry_wait,
                stop=stop_after_attempt(self.max_attempts),
                reraise=True,
            ):
                with attempt:
                    response = await client.messages.create(
                        model=self.model,
                        max_tokens=self.max_tokens,
                        messages=[{"role": "user", "content": [image_block, text_block]}],
                    )
        except Exception as e:
            raise ExternalCapabilityError(f"Visual description failed: {e}") from e

        if not response.content:
            raise ExternalCapabilityError("Visual description returned no content")

        response_block = cast(AnthropicTextBlock, response.content[0])
        description = response_block.text
        logger.info(f"Generated {len(description)} char description")
        return description
