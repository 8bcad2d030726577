"""Document model and conversion options."""

from pagemark.models.document import (
    CodeBlock,
    ContentBlock,
    DiagnosticBlock,
    Document,
    ExtractedImage,
    HeadingBlock,
    ImageBlock,
    ListBlock,
    MarkdownBlock,
    Page,
    QuoteBlock,
    TableBlock,
    TextBlock,
)
from pagemark.models.options import ConversionOptions, ImagePayload, VisualDescriber

__all__ = [
    "CodeBlock",
    "ContentBlock",
    "ConversionOptions",
    "DiagnosticBlock",
    "Document",
    "ExtractedImage",
    "HeadingBlock",
    "ImageBlock",
    "ImagePayload",
    "ListBlock",
    "MarkdownBlock",
    "Page",
    "QuoteBlock",
    "TableBlock",
    "TextBlock",
    "VisualDescriber",
]
