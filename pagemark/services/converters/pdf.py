"""PDF conversion with a per-page fallback to render-and-describe.

Every page is first read with PyMuPDF text extraction. Four signals computed
from that pass decide whether the text is trustworthy; when it is not and a
describer is available, the page is rendered to PNG and transcribed by the
visual-description capability instead. A failed description keeps the text
extraction result and records a warning.
"""

import asyncio
import logging
from dataclasses import dataclass, field

import fitz  # pymupdf

from pagemark.config import Settings, settings
from pagemark.enums import DescriptionPurpose, PdfStrategy
from pagemark.exceptions import ParseError
from pagemark.models import (
    ConversionOptions,
    Document,
    ExtractedImage,
    ImageBlock,
    ImagePayload,
    MarkdownBlock,
    Page,
)
from pagemark.services.converters.base import BaseConverter
from pagemark.services.converters.pdf_layout import TextSpan, group_spans, structure_lines

logger = logging.getLogger(__name__)

IMAGE_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "jpx": "image/jp2",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
}


@dataclass(frozen=True)
class PageMetrics:
    """Signals computed from a page's text extraction pass."""

    word_count: int
    alphanumeric_ratio: float
    unstructured_char_count: int
    embedded_image_count: int

    @classmethod
    def from_text(
        cls, text: str, unstructured_char_count: int, embedded_image_count: int
    ) -> "PageMetrics":
        visible = [char for char in text if not char.isspace()]
        alphanumeric = sum(1 for char in visible if char.isalnum())
        return cls(
            word_count=len(text.split()),
            alphanumeric_ratio=alphanumeric / len(visible) if visible else 0.0,
            unstructured_char_count=unstructured_char_count,
            embedded_image_count=embedded_image_count,
        )


@dataclass(frozen=True)
class FallbackThresholds:
    min_words: int = 10
    min_alphanumeric_ratio: float = 0.5
    min_unstructured_chars: int = 50
    image_heavy_word_limit: int = 350

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "FallbackThresholds":
        config = config or settings
        return cls(
            min_words=config.pdf_min_words,
            min_alphanumeric_ratio=config.pdf_min_alphanumeric_ratio,
            min_unstructured_chars=config.pdf_min_unstructured_chars,
            image_heavy_word_limit=config.pdf_image_heavy_word_limit,
        )


@dataclass(frozen=True)
class FallbackDecision:
    strategy: PdfStrategy
    # Every condition that triggered, in evaluation order
    reasons: tuple[str, ...] = ()


def choose_strategy(
    metrics: PageMetrics, thresholds: FallbackThresholds = FallbackThresholds()
) -> FallbackDecision:
    """
    Decide between text extraction and render-and-describe for one page.

    Any single condition is enough to fall back; all comparisons are strict.
    """
    reasons = []
    if metrics.word_count < thresholds.min_words:
        reasons.append(f"word_count {metrics.word_count} < {thresholds.min_words}")
    if metrics.alphanumeric_ratio < thresholds.min_alphanumeric_ratio:
        reasons.append(
            f"alphanumeric_ratio {metrics.alphanumeric_ratio:.2f} "
            f"< {thresholds.min_alphanumeric_ratio}"
        )
    if metrics.unstructured_char_count < thresholds.min_unstructured_chars:
        reasons.append(
            f"unstructured_char_count {metrics.unstructured_char_count} "
            f"< {thresholds.min_unstructured_chars}"
        )
    if metrics.embedded_image_count > 0 and metrics.word_count < thresholds.image_heavy_word_limit:
        reasons.append(
            f"{metrics.embedded_image_count} embedded images with word_count "
            f"{metrics.word_count} < {thresholds.image_heavy_word_limit}"
        )

    if reasons:
        return FallbackDecision(PdfStrategy.RENDER_AND_DESCRIBE, tuple(reasons))
    return FallbackDecision(PdfStrategy.TEXT_EXTRACTION)


@dataclass
class PageExtraction:
    """Text extraction result for one page, plus its render when a fallback is due."""

    page: Page
    metrics: PageMetrics
    decision: FallbackDecision
    rendered: ExtractedImage | None = None
    warnings: list[str] = field(default_factory=list)


class PdfConverter(BaseConverter):
    SUPPORTED_EXTENSIONS = frozenset({"pdf"})

    def __init__(self, thresholds: FallbackThresholds | None = None, render_dpi: int | None = None):
        self.thresholds = thresholds or FallbackThresholds.from_settings()
        self.render_dpi = render_dpi or settings.pdf_render_dpi

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data:
            raise ParseError("Empty PDF document")
        try:
            pdf = fitz.open(stream=data, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise ParseError(f"Failed to open PDF document: {e}") from e

        with pdf:
            if pdf.needs_pass:
                raise ParseError("PDF is encrypted")
            title = (pdf.metadata or {}).get("title") or None
            author = (pdf.metadata or {}).get("author") or None
            try:
                extractions = [
                    self._extract_page(pdf, index, options) for index in range(pdf.page_count)
                ]
            except RuntimeError as e:
                raise ParseError(f"Failed to read PDF page: {e}") from e

        # Descriptions run concurrently; pages keep their source index
        await asyncio.gather(
            *[
                self._describe_page(extraction, options)
                for extraction in extractions
                if extraction.rendered is not None
            ]
        )

        document = Document(
            title=title,
            metadata={
                "source_type": "pdf",
                "author": author,
                "page_count": len(extractions),
                "fallback_pages": [
                    e.page.number for e in extractions if e.page.rendered_image is not None
                ],
                "warnings": [warning for e in extractions for warning in e.warnings],
            },
        )
        for extraction in extractions:
            document.add_page(extraction.page)
        return document

    def _extract_page(self, pdf, index: int, options: ConversionOptions) -> PageExtraction:
        pdf_page = pdf[index]
        number = index + 1

        spans = []
        text_dict = pdf_page.get_text("dict", flags=fitz.TEXTFLAGS_TEXT)
        for block in text_dict["blocks"]:
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    x0, y0, x1, y1 = span["bbox"]
                    spans.append(TextSpan(span["text"], x0, y0, x1, y1, span["size"]))

        layout = structure_lines(group_spans(spans))
        image_refs = pdf_page.get_images(full=True)
        metrics = PageMetrics.from_text(
            layout.text, layout.unstructured_char_count, len(image_refs)
        )

        page = Page(number=number, blocks=list(layout.blocks))
        if options.extract_images:
            for image in self._extract_images(pdf, image_refs, number):
                page.add(ImageBlock(image))

        if options.force_llm_ocr:
            decision = FallbackDecision(PdfStrategy.RENDER_AND_DESCRIBE, ("force_llm_ocr",))
        else:
            decision = choose_strategy(metrics, self.thresholds)

        extraction = PageExtraction(page=page, metrics=metrics, decision=decision)
        if decision.strategy is PdfStrategy.RENDER_AND_DESCRIBE:
            if options.describer is None:
                logger.debug(f"Page {number} qualifies for fallback but no describer is set")
            else:
                logger.info(f"Page {number} falls back to render-and-describe: {decision.reasons}")
                extraction.rendered = self._render_page(pdf_page, number)
        return extraction

    def _extract_images(self, pdf, image_refs: list, page_number: int) -> list[ExtractedImage]:
        images = []
        for ref in image_refs:
            xref = ref[0]
            try:
                info = pdf.extract_image(xref)
            except (RuntimeError, ValueError) as e:
                logger.warning(f"Failed to extract image {xref} on page {page_number}: {e}")
                continue
            if not info or not info.get("image"):
                continue
            ext = info.get("ext", "png")
            images.append(
                ExtractedImage(
                    id=f"p{page_number}_img{len(images) + 1}",
                    data=info["image"],
                    mime_type=IMAGE_MIME_TYPES.get(ext, f"image/{ext}"),
                    width=info.get("width"),
                    height=info.get("height"),
                    page_number=page_number,
                )
            )
        return images

    def _render_page(self, pdf_page, number: int) -> ExtractedImage:
        # DPI is specified via the matrix parameter (DPI/72 = zoom factor)
        zoom = self.render_dpi / 72.0
        pixmap = pdf_page.get_pixmap(matrix=fitz.Matrix(zoom, zoom))
        return ExtractedImage(
            id=f"page{number}",
            data=pixmap.tobytes("png"),
            mime_type="image/png",
            width=pixmap.width,
            height=pixmap.height,
            page_number=number,
        )

    async def _describe_page(self, extraction: PageExtraction, options: ConversionOptions) -> None:
        """Replace a page's blocks with its transcription; keep the text result on failure."""
        page = extraction.page
        rendered = extraction.rendered
        payload = ImagePayload(
            data=rendered.data,
            mime_type=rendered.mime_type,
            purpose=DescriptionPurpose.PAGE,
            file_name=options.source_name,
        )
        try:
            description = await options.describer(payload)
        except Exception as e:
            message = f"Page {page.number}: visual description failed, kept text extraction ({e})"
            logger.warning(
                message,
                extra={
                    "page_number": page.number,
                    "source": options.source_name,
                    "exception_type": type(e).__name__,
                },
            )
            extraction.warnings.append(message)
            return

        rendered.description = description
        page.blocks = [MarkdownBlock(description)]
        page.rendered_image = rendered
