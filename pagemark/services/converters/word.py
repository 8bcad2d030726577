"""Word document conversion using python-docx."""

import io
import logging
import zipfile

from docx import Document as load_docx
from docx.opc.exceptions import PackageNotFoundError
from docx.table import Table
from docx.text.paragraph import Paragraph

from pagemark.exceptions import ParseError
from pagemark.models import (
    ContentBlock,
    ConversionOptions,
    Document,
    ExtractedImage,
    HeadingBlock,
    ImageBlock,
    ListBlock,
    Page,
    TableBlock,
    TextBlock,
)
from pagemark.services.converters.base import BaseConverter

logger = logging.getLogger(__name__)

DOCUMENT_CONTENT_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"
)
TEMPLATE_CONTENT_TYPES = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.template.main+xml",
    "application/vnd.ms-word.template.macroEnabledTemplate.main+xml",
)


def _heading_level(style_name: str) -> int | None:
    """Map Word heading styles to a heading level."""
    if style_name == "Title":
        return 1
    if style_name.startswith("Heading"):
        try:
            return min(int(style_name.replace("Heading", "").strip()), 6)
        except ValueError:
            return 2
    return None


class DocxConverter(BaseConverter):
    """Convert Word documents, preserving headings, paragraphs, lists, tables and images."""

    SUPPORTED_EXTENSIONS = frozenset({"docx"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        try:
            doc = load_docx(io.BytesIO(self._prepare(data)))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise ParseError(f"Failed to open Word document: {e}") from e

        blocks = self._extract_blocks(doc, options)

        return Document(
            title=doc.core_properties.title or None,
            pages=[Page(number=1, blocks=blocks)],
            metadata={
                "source_type": "docx",
                "author": doc.core_properties.author or None,
                "block_count": len(blocks),
            },
        )

    def _prepare(self, data: bytes) -> bytes:
        return data

    def _extract_blocks(self, doc, options: ConversionOptions) -> list[ContentBlock]:
        blocks: list[ContentBlock] = []
        list_items: list[str] = []
        list_ordered = False
        image_count = 0

        def flush_list() -> None:
            nonlocal list_items
            if list_items:
                blocks.append(ListBlock(items=list_items, ordered=list_ordered))
                list_items = []

        for element in doc.iter_inner_content():
            if isinstance(element, Table):
                flush_list()
                table = self._extract_table(element)
                if table:
                    blocks.append(table)
                continue

            if not isinstance(element, Paragraph):
                continue

            if options.extract_images:
                for image in self._paragraph_images(doc, element, image_count):
                    image_count += 1
                    flush_list()
                    blocks.append(ImageBlock(image))

            text = element.text.strip()
            if not text:
                continue

            style_name = element.style.name if element.style is not None else ""
            level = _heading_level(style_name)

            if style_name.startswith("List"):
                ordered = "Number" in style_name
                if list_items and ordered != list_ordered:
                    flush_list()
                list_ordered = ordered
                list_items.append(text)
                continue

            flush_list()
            if level is not None:
                blocks.append(HeadingBlock(level=level, text=text))
            else:
                blocks.append(TextBlock(text))

        flush_list()
        return blocks

    def _extract_table(self, table: Table) -> TableBlock | None:
        rows = [[cell.text.strip() for cell in row.cells] for row in table.rows]
        if not rows:
            return None
        return TableBlock(headers=rows[0], rows=rows[1:])

    def _paragraph_images(self, doc, paragraph: Paragraph, start: int) -> list[ExtractedImage]:
        images = []
        for rel_id in paragraph._element.xpath(".//a:blip/@r:embed"):
            part = doc.part.related_parts.get(rel_id)
            if part is None:
                logger.debug(f"Image relationship {rel_id} has no target part")
                continue
            images.append(
                ExtractedImage(
                    id=f"img{start + len(images) + 1}",
                    data=part.blob,
                    mime_type=part.content_type,
                )
            )
        return images


class DocxTemplateConverter(DocxConverter):
    """
    Word templates (.dotx, .dotm).

    python-docx only opens parts declared as a document, so the template
    content type is rewritten before loading.
    """

    SUPPORTED_EXTENSIONS = frozenset({"dotx", "dotm"})

    def _prepare(self, data: bytes) -> bytes:
        try:
            source = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise ParseError(f"Failed to open Word template: {e}") from e

        output = io.BytesIO()
        with source, zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as target:
            for info in source.infolist():
                content = source.read(info.filename)
                if info.filename == "[Content_Types].xml":
                    text = content.decode("utf-8")
                    for content_type in TEMPLATE_CONTENT_TYPES:
                        text = text.replace(content_type, DOCUMENT_CONTENT_TYPE)
                    content = text.encode("utf-8")
                target.writestr(info, content)
        return output.getvalue()

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        document = await super().convert_bytes(data, options)
        document.metadata["template"] = True
        return document
