"""Shared fixtures for unit tests."""

import io
import os
import zipfile
from unittest.mock import AsyncMock

import pytest

# Override settings before importing package modules
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"

from pagemark.models import ImagePayload
from pagemark.services.conversion import ConversionService
from pagemark.services.storage import InMemoryStorage


def make_zip(entries: dict[str, bytes]) -> bytes:
    """Build a ZIP archive in memory, entries in insertion order."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def make_png(width: int = 4, height: int = 3, color: str = "red") -> bytes:
    from PIL import Image

    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def storage():
    """Empty in-memory storage; tests add files as needed."""
    return InMemoryStorage()


@pytest.fixture
def service(storage):
    """Conversion service with every built-in converter over in-memory storage."""
    return ConversionService(storage=storage)


@pytest.fixture
def describer():
    """Visual describer that answers with a fixed transcription."""

    async def describe(payload: ImagePayload) -> str:
        return f"Described {payload.purpose}"

    return AsyncMock(side_effect=describe)


@pytest.fixture
def failing_describer():
    """Visual describer that always fails."""
    return AsyncMock(side_effect=RuntimeError("vision unavailable"))
