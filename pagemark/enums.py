"""Enums for values shared across the converters."""

from enum import StrEnum


class BlockType(StrEnum):
    """Kind of a content block within a page."""

    TEXT = "text"
    HEADING = "heading"
    IMAGE = "image"
    TABLE = "table"
    LIST = "list"
    CODE = "code"
    QUOTE = "quote"
    MARKDOWN = "markdown"
    DIAGNOSTIC = "diagnostic"


class PdfStrategy(StrEnum):
    """Extraction strategy chosen for a PDF page."""

    TEXT_EXTRACTION = "text_extraction"
    RENDER_AND_DESCRIBE = "render_and_describe"


class DescriptionPurpose(StrEnum):
    """What the visual-description capability is being asked to do."""

    PAGE = "page"  # Transcribe a rendered page to markdown
    IMAGE = "image"  # Describe a standalone or embedded image


class Precedence(StrEnum):
    """Which signal wins when extension and content sniffing disagree."""

    EXTENSION = "extension"
    CONTENT = "content"
