"""HTML converter."""

import base64
import binascii

from bs4 import BeautifulSoup, Tag

from pagemark.models import (
    CodeBlock,
    ContentBlock,
    ConversionOptions,
    Document,
    ExtractedImage,
    HeadingBlock,
    ImageBlock,
    ListBlock,
    Page,
    QuoteBlock,
    TableBlock,
    TextBlock,
)
from pagemark.services.converters.base import BaseConverter, decode_text


class HtmlConverter(BaseConverter):
    """Extract headings, paragraphs, lists, tables, code, quotes and inline images from HTML."""

    SUPPORTED_EXTENSIONS = frozenset({"html", "htm", "xhtml"})

    HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
    # Elements converted as a whole; their descendants are not visited again
    CONTAINER_TAGS = {"ul", "ol", "table", "pre", "blockquote"}

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data.strip():
            return Document(metadata={"source_type": "html"})

        soup = BeautifulSoup(decode_text(data, options.source_name), "lxml")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()

        blocks = self._extract_blocks(soup, options)

        return Document(
            title=self._extract_title(soup),
            pages=[Page(number=1, blocks=blocks)],
            metadata={"source_type": "html", "block_count": len(blocks), "url": options.url},
        )

    def _extract_title(self, soup: BeautifulSoup) -> str | None:
        """Extract document title from HTML."""
        title_tag = soup.find("title")
        if title_tag and title_tag.get_text(strip=True):
            return title_tag.get_text(strip=True)
        return None

    def _extract_blocks(
        self, soup: BeautifulSoup, options: ConversionOptions
    ) -> list[ContentBlock]:
        blocks: list[ContentBlock] = []
        root = soup.find("body") or soup
        image_count = 0

        for element in root.descendants:
            if not isinstance(element, Tag):
                continue
            if element.find_parent(self.CONTAINER_TAGS):
                continue

            tag_name = element.name.lower() if element.name else ""

            if tag_name in self.HEADING_TAGS:
                text = element.get_text(" ", strip=True)
                if text:
                    blocks.append(HeadingBlock(level=int(tag_name[1]), text=text))

            elif tag_name == "p":
                if element.find_parent(self.HEADING_TAGS):
                    continue
                text = element.get_text(" ", strip=True)
                if text:
                    blocks.append(TextBlock(text))

            elif tag_name in ("ul", "ol"):
                items = [
                    li.get_text(" ", strip=True) for li in element.find_all("li", recursive=False)
                ]
                items = [item for item in items if item]
                if items:
                    blocks.append(ListBlock(items=items, ordered=tag_name == "ol"))

            elif tag_name == "table":
                table = self._extract_table(element)
                if table:
                    blocks.append(table)

            elif tag_name == "pre":
                code = element.find("code")
                language = None
                if code is not None:
                    for css_class in code.get("class") or []:
                        if css_class.startswith("language-"):
                            language = css_class.removeprefix("language-")
                blocks.append(CodeBlock(code=element.get_text(), language=language))

            elif tag_name == "blockquote":
                text = element.get_text("\n", strip=True)
                if text:
                    blocks.append(QuoteBlock(text))

            elif tag_name == "img" and options.extract_images:
                image = self._extract_inline_image(element, image_count + 1)
                if image:
                    image_count += 1
                    blocks.append(ImageBlock(image))

        return blocks

    def _extract_table(self, table_element: Tag) -> TableBlock | None:
        rows: list[list[str]] = []
        header: list[str] | None = None
        for tr in table_element.find_all("tr"):
            cells = tr.find_all(["td", "th"])
            if not cells:
                continue
            texts = [cell.get_text(" ", strip=True) for cell in cells]
            if header is None and not rows and all(cell.name == "th" for cell in cells):
                header = texts
            else:
                rows.append(texts)

        if header is None and not rows:
            return None
        return TableBlock(headers=header or [], rows=rows)

    def _extract_inline_image(self, element: Tag, index: int) -> ExtractedImage | None:
        """Only ``data:`` URIs carry bytes; linked images are not fetched."""
        src = element.get("src") or ""
        if not src.startswith("data:image/") or ";base64," not in src:
            return None
        header, payload = src.split(",", 1)
        try:
            image_data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            return None
        return ExtractedImage(
            id=f"img{index}",
            data=image_data,
            mime_type=header[len("data:") : header.index(";")],
            alt_text=element.get("alt") or None,
        )
