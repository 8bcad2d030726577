"""Convert documents, archives and images into Markdown."""

from pagemark.exceptions import (
    ConversionError,
    EncodingError,
    ExternalCapabilityError,
    IoError,
    ParseError,
    RecursionLimitExceeded,
    UnsupportedFormat,
)
from pagemark.models import ConversionOptions, Document, ImagePayload, Page
from pagemark.services.conversion import ConversionService
from pagemark.services.storage import InMemoryStorage, LocalFileStorage
from pagemark.services.vision import AnthropicVisionDescriber

__all__ = [
    "AnthropicVisionDescriber",
    "ConversionError",
    "ConversionOptions",
    "ConversionService",
    "Document",
    "EncodingError",
    "ExternalCapabilityError",
    "ImagePayload",
    "InMemoryStorage",
    "IoError",
    "LocalFileStorage",
    "Page",
    "ParseError",
    "RecursionLimitExceeded",
    "UnsupportedFormat",
]
