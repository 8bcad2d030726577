"""Plain text, Markdown, and source code converters."""

from pagemark.models import CodeBlock, ConversionOptions, Document, MarkdownBlock, Page, TextBlock
from pagemark.services.converters.base import BaseConverter, decode_text

# Extension -> fenced code block language tag
CODE_LANGUAGES = {
    "py": "python",
    "js": "javascript",
    "ts": "typescript",
    "rs": "rust",
    "go": "go",
    "java": "java",
    "c": "c",
    "cpp": "cpp",
    "h": "c",
    "sh": "bash",
    "sql": "sql",
    "css": "css",
    "rb": "ruby",
    "php": "php",
}


def _single_page(block, source_type: str) -> Document:
    return Document(pages=[Page(number=1, blocks=[block])], metadata={"source_type": source_type})


class TextConverter(BaseConverter):
    """Plain text, kept verbatim as one text block."""

    SUPPORTED_EXTENSIONS = frozenset({"txt", "text", "log"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data:
            return Document(metadata={"source_type": "text"})
        return _single_page(TextBlock(decode_text(data, options.source_name)), "text")


class MarkdownConverter(BaseConverter):
    """Markdown passes through unchanged."""

    SUPPORTED_EXTENSIONS = frozenset({"md", "markdown", "mdown", "mkd"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data:
            return Document(metadata={"source_type": "markdown"})
        return _single_page(MarkdownBlock(decode_text(data, options.source_name)), "markdown")


class CodeConverter(BaseConverter):
    """Source files become a fenced code block tagged with their language."""

    SUPPORTED_EXTENSIONS = frozenset(CODE_LANGUAGES)

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data:
            return Document(metadata={"source_type": "code"})
        language = CODE_LANGUAGES.get(options.file_extension or "")
        code = decode_text(data, options.source_name)
        return _single_page(CodeBlock(code=code, language=language), "code")
