"""EPUB converter: spine chapters through the HTML block walker."""

import base64
import io
import logging
import posixpath
import zipfile
from dataclasses import replace
from urllib.parse import unquote, urldefrag

from bs4 import BeautifulSoup

from pagemark.exceptions import ParseError
from pagemark.models import ContentBlock, ConversionOptions, Document, ImageBlock, Page
from pagemark.services.converters.base import decode_text
from pagemark.services.converters.html import HtmlConverter

logger = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"


def _resolve(base_dir: str, href: str) -> str:
    path = unquote(urldefrag(href).url)
    return posixpath.normpath(posixpath.join(base_dir, path)).lstrip("/")


class EpubConverter(HtmlConverter):
    """
    Convert EPUB books, one page per non-empty spine chapter.

    Images referenced from a chapter are read from the book and inlined so
    the HTML walker picks them up.
    """

    SUPPORTED_EXTENSIONS = frozenset({"epub"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as book:
                return self._convert_book(book, options)
        except (zipfile.BadZipFile, KeyError) as e:
            raise ParseError(f"Invalid EPUB: {e}") from e

    def _convert_book(self, book: zipfile.ZipFile, options: ConversionOptions) -> Document:
        container = BeautifulSoup(book.read(CONTAINER_PATH), "xml")
        rootfile = container.find("rootfile")
        if rootfile is None or not rootfile.get("full-path"):
            raise ParseError("Invalid EPUB: container.xml names no package document")

        opf_path = rootfile["full-path"]
        opf_dir = posixpath.dirname(opf_path)
        package = BeautifulSoup(book.read(opf_path), "xml")

        # manifest id -> (zip path, media type)
        manifest = {
            item["id"]: (_resolve(opf_dir, item["href"]), item.get("media-type", ""))
            for item in package.find_all("item")
            if item.get("id") and item.get("href")
        }
        media_types = dict(manifest.values())

        pages = []
        for itemref in package.find_all("itemref"):
            path, media_type = manifest.get(itemref.get("idref"), (None, None))
            if path is None or "html" not in media_type:
                continue
            chapter = len(pages) + 1
            blocks = self._chapter_blocks(book, path, chapter, media_types, options)
            if blocks:
                pages.append(Page(number=chapter, blocks=blocks))

        title = package.find("title")
        creator = package.find("creator")
        logger.debug(f"Converted EPUB {opf_path} with {len(pages)} chapters")

        return Document(
            title=(title.get_text(strip=True) or None) if title else None,
            pages=pages,
            metadata={
                "source_type": "epub",
                "author": (creator.get_text(strip=True) or None) if creator else None,
                "chapter_count": len(pages),
            },
        )

    def _chapter_blocks(
        self,
        book: zipfile.ZipFile,
        path: str,
        chapter: int,
        media_types: dict[str, str],
        options: ConversionOptions,
    ) -> list[ContentBlock]:
        soup = BeautifulSoup(decode_text(book.read(path), path), "lxml")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()

        if options.extract_images:
            chapter_dir = posixpath.dirname(path)
            for img in soup.find_all("img", src=True):
                target = _resolve(chapter_dir, img["src"])
                mime_type = media_types.get(target, "")
                if not mime_type.startswith("image/") or target not in book.namelist():
                    continue
                payload = base64.standard_b64encode(book.read(target)).decode("ascii")
                img["src"] = f"data:{mime_type};base64,{payload}"

        blocks = self._extract_blocks(soup, options)
        return [
            ImageBlock(
                replace(block.image, id=f"c{chapter}_{block.image.id}", page_number=chapter)
            )
            if isinstance(block, ImageBlock)
            else block
            for block in blocks
        ]
