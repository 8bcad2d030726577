"""Document model produced by every converter.

A Document is built fresh for each conversion call and handed to the caller;
converters keep no reference to it afterwards.
"""

import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, ClassVar

from pagemark.enums import BlockType, DescriptionPurpose
from pagemark.models.options import ImagePayload, VisualDescriber

logger = logging.getLogger(__name__)

MIME_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "image/tiff": ".tiff",
    "image/svg+xml": ".svg",
}


@dataclass
class ExtractedImage:
    """An image pulled out of a document, or a rendered page surrogate."""

    id: str
    data: bytes = field(repr=False)
    mime_type: str
    width: int | None = None
    height: int | None = None
    alt_text: str | None = None
    # Filled in by the visual-description capability only
    description: str | None = None
    page_number: int | None = None

    @property
    def filename(self) -> str:
        return f"{self.id}{MIME_EXTENSIONS.get(self.mime_type, '.bin')}"

    @property
    def display_text(self) -> str | None:
        """The description, falling back to alt text."""
        return self.description or self.alt_text

    def to_base64(self) -> str:
        return base64.standard_b64encode(self.data).decode("utf-8")


def _escape_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ").strip()


class ContentBlock(ABC):
    """One semantic unit of page content."""

    kind: ClassVar[BlockType]

    @abstractmethod
    def to_markdown(self, image_dir: str | None = None) -> str:
        """Render this block as Markdown, linking images under ``image_dir``."""


@dataclass
class TextBlock(ContentBlock):
    text: str

    kind: ClassVar[BlockType] = BlockType.TEXT

    def to_markdown(self, image_dir: str | None = None) -> str:
        return f"{self.text}\n"


@dataclass
class HeadingBlock(ContentBlock):
    level: int
    text: str

    kind: ClassVar[BlockType] = BlockType.HEADING

    def to_markdown(self, image_dir: str | None = None) -> str:
        level = min(max(self.level, 1), 6)
        return f"{'#' * level} {self.text}\n"


@dataclass
class ImageBlock(ContentBlock):
    image: ExtractedImage

    kind: ClassVar[BlockType] = BlockType.IMAGE

    def to_markdown(self, image_dir: str | None = None) -> str:
        target = f"{image_dir}/{self.image.filename}" if image_dir else self.image.filename
        md = f"![{self.image.alt_text or self.image.id}]({target})\n"
        if self.image.description:
            md += f"\n{self.image.description.strip()}\n"
        return md


@dataclass
class TableBlock(ContentBlock):
    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)

    kind: ClassVar[BlockType] = BlockType.TABLE

    @property
    def column_count(self) -> int:
        return max([len(self.headers), *(len(row) for row in self.rows)], default=0)

    def to_markdown(self, image_dir: str | None = None) -> str:
        width = self.column_count
        if width == 0:
            return ""

        def line(cells: list[str]) -> str:
            padded = [_escape_cell(c) for c in cells] + [""] * (width - len(cells))
            return "| " + " | ".join(padded) + " |"

        lines = [line(self.headers), "| " + " | ".join(["---"] * width) + " |"]
        lines.extend(line(row) for row in self.rows)
        return "\n".join(lines) + "\n"


@dataclass
class ListBlock(ContentBlock):
    items: list[str]
    ordered: bool = False

    kind: ClassVar[BlockType] = BlockType.LIST

    def to_markdown(self, image_dir: str | None = None) -> str:
        if self.ordered:
            return "".join(f"{i}. {item}\n" for i, item in enumerate(self.items, start=1))
        return "".join(f"- {item}\n" for item in self.items)


@dataclass
class CodeBlock(ContentBlock):
    code: str
    language: str | None = None

    kind: ClassVar[BlockType] = BlockType.CODE

    def to_markdown(self, image_dir: str | None = None) -> str:
        fence = "````" if "```" in self.code else "```"
        return f"{fence}{self.language or ''}\n{self.code.rstrip()}\n{fence}\n"


@dataclass
class QuoteBlock(ContentBlock):
    text: str

    kind: ClassVar[BlockType] = BlockType.QUOTE

    def to_markdown(self, image_dir: str | None = None) -> str:
        return "\n".join(f"> {line}" for line in self.text.splitlines()) + "\n"


@dataclass
class MarkdownBlock(ContentBlock):
    """Already-formatted markdown, passed through untouched."""

    markdown: str

    kind: ClassVar[BlockType] = BlockType.MARKDOWN

    def to_markdown(self, image_dir: str | None = None) -> str:
        return self.markdown if self.markdown.endswith("\n") else self.markdown + "\n"


@dataclass
class DiagnosticBlock(ContentBlock):
    """A tolerated sub-failure recorded in place of the content it replaces."""

    message: str
    source: str | None = None
    error_type: str | None = None

    kind: ClassVar[BlockType] = BlockType.DIAGNOSTIC

    def to_markdown(self, image_dir: str | None = None) -> str:
        where = f" `{self.source}`" if self.source else ""
        return f"> **Not converted:**{where} {self.message}\n"


@dataclass
class Page:
    """A page, slide, sheet, or archive entry section."""

    number: int
    blocks: list[ContentBlock] = field(default_factory=list)
    # Whole-page visual surrogate, set only when fine-grained extraction was skipped
    rendered_image: ExtractedImage | None = None
    label: str | None = None

    def add(self, block: ContentBlock) -> None:
        self.blocks.append(block)

    def images(self) -> list[ExtractedImage]:
        """Block images, preceded by the page render when there is one."""
        images = [block.image for block in self.blocks if isinstance(block, ImageBlock)]
        if self.rendered_image is not None:
            images.insert(0, self.rendered_image)
        return images

    @property
    def marker(self) -> str:
        return f"Page {self.number}: {self.label}" if self.label else f"Page {self.number}"

    def to_markdown(self, image_dir: str | None = None) -> str:
        parts = [block.to_markdown(image_dir) for block in self.blocks]
        if self.rendered_image is not None:
            # The blocks hold the transcription; only link the render itself
            filename = self.rendered_image.filename
            target = f"{image_dir}/{filename}" if image_dir else filename
            parts.insert(0, f"![{self.marker}]({target})\n")
        return "\n".join(parts)

    def to_text_only(self) -> "Page":
        """Copy of this page with images replaced by their descriptions."""
        blocks: list[ContentBlock] = []
        for block in self.blocks:
            if isinstance(block, ImageBlock):
                blocks.append(TextBlock(f"[Image: {block.image.display_text or block.image.id}]"))
            else:
                blocks.append(block)
        return replace(self, blocks=blocks, rendered_image=None)


@dataclass
class Document:
    """Top-level conversion result."""

    title: str | None = None
    pages: list[Page] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def next_page_number(self) -> int:
        return self.pages[-1].number + 1 if self.pages else 1

    def add_page(self, page: Page) -> None:
        """Append a page, keeping page numbers strictly increasing."""
        if self.pages and page.number <= self.pages[-1].number:
            raise ValueError(
                f"Page number {page.number} does not follow page {self.pages[-1].number}"
            )
        self.pages.append(page)

    def new_page(self, label: str | None = None) -> Page:
        page = Page(number=self.next_page_number, label=label)
        self.pages.append(page)
        return page

    def check_page_numbers(self) -> None:
        """Raise ValueError unless page numbers are unique, increasing and start at 1."""
        previous = 0
        for index, page in enumerate(self.pages):
            if index == 0 and page.number != 1:
                raise ValueError(f"First page is numbered {page.number}, expected 1")
            if page.number <= previous:
                raise ValueError(f"Page {page.number} follows page {previous}")
            previous = page.number

    def images(self) -> list[ExtractedImage]:
        return [image for page in self.pages for image in page.images()]

    def to_markdown(self, image_dir: str | None = "images") -> str:
        parts: list[str] = []
        if self.title:
            parts.append(f"# {self.title}\n")

        multi_page = len(self.pages) > 1
        for page in self.pages:
            if multi_page:
                parts.append(f"---\n\n<!-- {page.marker} -->\n")
            body = page.to_markdown(image_dir)
            if body:
                parts.append(body)

        return "\n".join(parts)

    def save_images(self, directory: str | Path) -> list[Path]:
        """Write every image referenced by the markdown into ``directory``."""
        target = Path(directory)
        images = self.images()
        if images:
            target.mkdir(parents=True, exist_ok=True)
        written = []
        for image in images:
            path = target / image.filename
            path.write_bytes(image.data)
            written.append(path)
        return written

    def to_text_only(self) -> "Document":
        return replace(self, pages=[page.to_text_only() for page in self.pages])

    async def with_image_descriptions(self, describer: VisualDescriber) -> "Document":
        """
        Copy of this document with missing image descriptions filled in.

        Images are described concurrently. A failed description leaves the
        image undescribed and is logged, it never fails the document.
        """

        async def describe(image: ExtractedImage) -> str | None:
            payload = ImagePayload(
                data=image.data,
                mime_type=image.mime_type,
                purpose=DescriptionPurpose.IMAGE,
                file_name=image.alt_text or image.id,
            )
            try:
                return await describer(payload)
            except Exception as e:
                logger.warning(
                    f"Image description failed for {image.id}: {e}",
                    extra={"image_id": image.id, "exception_type": type(e).__name__},
                )
                return None

        pending = [
            block.image
            for page in self.pages
            for block in page.blocks
            if isinstance(block, ImageBlock) and block.image.description is None
        ]
        results = await asyncio.gather(*[describe(image) for image in pending])
        described = {id(image): text for image, text in zip(pending, results, strict=True)}

        pages = []
        for page in self.pages:
            blocks: list[ContentBlock] = []
            for block in page.blocks:
                if isinstance(block, ImageBlock) and described.get(id(block.image)):
                    block = ImageBlock(replace(block.image, description=described[id(block.image)]))
                blocks.append(block)
            pages.append(replace(page, blocks=blocks))

        return replace(self, pages=pages, metadata=dict(self.metadata))
