"""PowerPoint conversion using python-pptx: one page per slide."""

import io
import logging
import zipfile

from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE_TYPE, PP_PLACEHOLDER
from pptx.exc import PackageNotFoundError

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

TITLE_PLACEHOLDERS = {PP_PLACEHOLDER.TITLE, PP_PLACEHOLDER.CENTER_TITLE}


def _placeholder_type(shape):
    if not shape.is_placeholder:
        return None
    return shape.placeholder_format.type


class PptxConverter(BaseConverter):
    """
    Convert PowerPoint presentations.

    Titles become headings, text frames become paragraphs or bullet lists,
    and tables and pictures are kept. Grouped shapes are walked in order.
    """

    SUPPORTED_EXTENSIONS = frozenset({"pptx"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        try:
            presentation = Presentation(io.BytesIO(data))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise ParseError(f"Failed to open presentation: {e}") from e

        pages = []
        for number, slide in enumerate(presentation.slides, start=1):
            blocks: list[ContentBlock] = []
            for shape in slide.shapes:
                blocks.extend(self._shape_blocks(shape, number, blocks, options))
            pages.append(Page(number=number, blocks=blocks))

        logger.debug(f"Converted presentation with {len(pages)} slides")

        return Document(
            title=presentation.core_properties.title or None,
            pages=pages,
            metadata={
                "source_type": "pptx",
                "author": presentation.core_properties.author or None,
                "slide_count": len(pages),
            },
        )

    def _shape_blocks(
        self, shape, slide_number: int, previous: list[ContentBlock], options: ConversionOptions
    ) -> list[ContentBlock]:
        if shape.shape_type == MSO_SHAPE_TYPE.GROUP:
            blocks: list[ContentBlock] = []
            for child in shape.shapes:
                blocks.extend(
                    self._shape_blocks(child, slide_number, [*previous, *blocks], options)
                )
            return blocks

        if shape.has_table:
            rows = [[cell.text.strip() for cell in row.cells] for row in shape.table.rows]
            return [TableBlock(headers=rows[0], rows=rows[1:])] if rows else []

        if shape.shape_type == MSO_SHAPE_TYPE.PICTURE:
            if not options.extract_images:
                return []
            index = sum(isinstance(block, ImageBlock) for block in previous) + 1
            return [
                ImageBlock(
                    ExtractedImage(
                        id=f"s{slide_number}_img{index}",
                        data=shape.image.blob,
                        mime_type=shape.image.content_type,
                        alt_text=shape.name or None,
                        page_number=slide_number,
                    )
                )
            ]

        if not shape.has_text_frame:
            return []

        paragraphs = [p.text.strip() for p in shape.text_frame.paragraphs if p.text.strip()]
        if not paragraphs:
            return []

        placeholder = _placeholder_type(shape)
        if placeholder in TITLE_PLACEHOLDERS:
            return [HeadingBlock(level=2, text=" ".join(paragraphs))]
        if placeholder == PP_PLACEHOLDER.SUBTITLE:
            return [HeadingBlock(level=3, text=" ".join(paragraphs))]
        if len(paragraphs) == 1:
            return [TextBlock(paragraphs[0])]
        return [ListBlock(items=paragraphs)]
