"""Format detection from a declared extension and a content prefix."""

import json
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import PurePosixPath

from pagemark.config import settings
from pagemark.enums import Precedence
from pagemark.exceptions import UnsupportedFormat

logger = logging.getLogger(__name__)

# Multi-part suffixes checked before the last suffix of a name
COMPOUND_EXTENSIONS = ("tar.gz", "tar.bz2", "tar.xz", "tar.zst")

# Generic containers whose extension says little about the content
DEFAULT_PRECEDENCE: dict[str, Precedence] = {
    "xml": Precedence.CONTENT,
    "txt": Precedence.CONTENT,
    "text": Precedence.CONTENT,
    "log": Precedence.CONTENT,
    "bin": Precedence.CONTENT,
    "dat": Precedence.CONTENT,
}

# (signature, offset, candidates, summary)
MAGIC_SIGNATURES: list[tuple[bytes, int, tuple[str, ...], str]] = [
    (b"%PDF-", 0, ("pdf",), "PDF header"),
    (b"\x1f\x8b", 0, ("gz",), "gzip magic"),
    (b"\xfd7zXZ\x00", 0, ("xz",), "xz magic"),
    (b"\x28\xb5\x2f\xfd", 0, ("zst",), "zstd magic"),
    (b"7z\xbc\xaf\x27\x1c", 0, ("7z",), "7z signature"),
    (b"ustar", 257, ("tar",), "tar ustar header"),
    (b"\x89PNG\r\n\x1a\n", 0, ("png",), "PNG signature"),
    (b"\xff\xd8\xff", 0, ("jpg",), "JPEG SOI marker"),
    (b"GIF87a", 0, ("gif",), "GIF signature"),
    (b"GIF89a", 0, ("gif",), "GIF signature"),
    (b"II*\x00", 0, ("tiff",), "TIFF little-endian header"),
    (b"MM\x00*", 0, ("tiff",), "TIFF big-endian header"),
    (b"SQLite format 3\x00", 0, ("sqlite",), "SQLite header"),
    (b"{\\rtf", 0, ("rtf",), "RTF header"),
]

OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

# Marker member paths inside an OOXML/ODF/EPUB zip container
ZIP_MEMBER_HINTS: list[tuple[bytes, str]] = [
    (b"mimetypeapplication/epub+zip", "epub"),
    (b"word/", "docx"),
    (b"xl/", "xlsx"),
    (b"ppt/", "pptx"),
]

# XML root element name -> format id
XML_ROOTS = {
    "rss": "rss",
    "feed": "atom",
    "fictionbook": "fb2",
    "opml": "opml",
    "svg": "svg",
    "html": "html",
}

_XML_PROLOG = re.compile(r"\s*(?:<\?.*?\?>\s*|<!--.*?-->\s*|<!DOCTYPE[^>]*>\s*)*", re.S | re.I)
_XML_ROOT = re.compile(r"<([A-Za-z_][\w.\-]*:)?([A-Za-z_][\w.\-]*)")


def normalize_extension(extension: str | None) -> str | None:
    """Strip the leading dot and lowercase; empty becomes None."""
    if not extension:
        return None
    normalized = extension.strip().lstrip(".").lower()
    return normalized or None


def extension_from_name(name: str | None) -> str | None:
    """Extension of a file or archive entry name, recognising compound tar suffixes."""
    if not name:
        return None
    base = PurePosixPath(name.replace("\\", "/")).name.lower()
    for compound in COMPOUND_EXTENSIONS:
        if base.endswith("." + compound) and len(base) > len(compound) + 1:
            return compound
    return normalize_extension(PurePosixPath(base).suffix)


@dataclass(frozen=True)
class SniffResult:
    """What content sniffing saw.

    ``candidates`` are format ids from most to least specific, e.g. an Atom
    feed yields ``("atom", "xml")``.
    """

    candidates: tuple[str, ...]
    confident: bool
    summary: str

    @property
    def format_id(self) -> str | None:
        return self.candidates[0] if self.candidates else None


def _sniff_zip(prefix: bytes) -> SniffResult:
    for marker, format_id in ZIP_MEMBER_HINTS:
        if marker in prefix:
            return SniffResult((format_id, "zip"), True, f"zip container with {format_id} members")
    return SniffResult(("zip",), True, "zip local file header")


def _sniff_text(text: str, truncated: bool = False) -> SniffResult:
    stripped = text.lstrip()

    if stripped.startswith("<"):
        head = stripped[:512].lower()
        if head.startswith("<!doctype html"):
            return SniffResult(("html",), True, "HTML doctype")

        body = stripped[_XML_PROLOG.match(stripped).end():]
        root = _XML_ROOT.match(body)
        if root:
            name = root.group(2).lower()
            if name in XML_ROOTS:
                return SniffResult((XML_ROOTS[name], "xml"), True, f"xml root <{root.group(2)}>")
            if name in ("book", "article") and "docbook" in stripped[:2048].lower():
                return SniffResult(("docbook", "xml"), True, f"DocBook root <{root.group(2)}>")
            if stripped.startswith("<?xml"):
                return SniffResult(("xml",), True, f"xml root <{root.group(2)}>")
        return SniffResult(("xml",), False, "markup without recognised root")

    if stripped.startswith(("{", "[")):
        result = _sniff_json(stripped, truncated)
        if result is not None:
            return result

    return SniffResult(("txt",), False, "UTF-8 text")


def _ends_early(error: json.JSONDecodeError, text: str) -> bool:
    """Whether a parse failure is the input running out rather than a syntax error."""
    return error.pos >= len(text.rstrip()) or error.msg.startswith("Unterminated string")


def _sniff_json(text: str, truncated: bool) -> SniffResult | None:
    """
    Classify text opening with ``{`` or ``[``.

    Only a prefix that parses as one complete JSON value is a confident match.
    A prefix cut off inside a value is a weak match; anything else, such as
    JSON lines or prose in braces, is left to the text fallback.
    """
    notebook = '"nbformat"' in text and '"cells"' in text
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        if truncated and _ends_early(e, text):
            candidates = ("ipynb", "json") if notebook else ("json",)
            return SniffResult(candidates, False, "JSON prefix cut off before the end")
        return None

    if isinstance(value, dict):
        if "nbformat" in value and "cells" in value:
            return SniffResult(("ipynb", "json"), True, "Jupyter notebook JSON")
        return SniffResult(("json",), True, "JSON object")
    return SniffResult(("json",), True, "JSON array")


def _decode_prefix(prefix: bytes) -> str | None:
    """Decode a prefix as UTF-8, tolerating a multi-byte character cut at the end."""
    try:
        return prefix.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        # A split character in the last 3 bytes is truncation, not binary
        if e.start >= len(prefix) - 3:
            return prefix[: e.start].decode("utf-8-sig")
        return None


def sniff(prefix: bytes, truncated: bool = False) -> SniffResult:
    """
    Classify a content prefix by magic bytes, then by textual structure.

    ``truncated`` says the input continues past ``prefix``.
    """
    if not prefix:
        return SniffResult((), False, "empty input")

    if prefix.startswith((b"PK\x03\x04", b"PK\x05\x06")):
        return _sniff_zip(prefix)

    for signature, offset, candidates, summary in MAGIC_SIGNATURES:
        if prefix[offset : offset + len(signature)] == signature:
            return SniffResult(candidates, True, summary)

    if prefix.startswith(b"RIFF") and prefix[8:12] == b"WEBP":
        return SniffResult(("webp",), True, "RIFF WEBP header")
    if prefix.startswith(b"BZh") and prefix[3:4].isdigit():
        return SniffResult(("bz2",), True, "bzip2 magic")
    if prefix.startswith(b"BM") and prefix[6:10] == b"\x00\x00\x00\x00":
        return SniffResult(("bmp",), True, "BMP header")
    if prefix.startswith(OLE2_SIGNATURE):
        # Shared by doc, xls, ppt and msg; the container says nothing about which
        return SniffResult(("ole2",), False, "OLE2 compound document")

    if b"\x00" not in prefix:
        text = _decode_prefix(prefix)
        if text is not None:
            return _sniff_text(text, truncated)

    return SniffResult((), False, f"no signature matched (first bytes: {prefix[:8].hex(' ')})")


class FormatDetector:
    """
    Resolve a format id from a declared extension and a content prefix.

    Extensions are trusted first. Extensions marked ``Precedence.CONTENT``
    in the precedence table, and absent or unknown extensions, fall through
    to content sniffing.
    """

    def __init__(
        self,
        known_extensions: Iterable[str],
        precedence: Mapping[str, Precedence] | None = None,
        prefix_size: int | None = None,
    ):
        self.known_extensions = frozenset(
            ext for ext in (normalize_extension(e) for e in known_extensions) if ext
        )
        self.precedence = dict(DEFAULT_PRECEDENCE)
        for extension, rule in (precedence or {}).items():
            self.precedence[normalize_extension(extension)] = Precedence(rule)
        self.prefix_size = prefix_size or settings.sniff_prefix_bytes

    def precedence_for(self, extension: str) -> Precedence:
        return self.precedence.get(extension, Precedence.EXTENSION)

    def resolve_extension(self, extension: str | None) -> str | None:
        """Format id decided by the extension alone, or None if content is needed."""
        ext = normalize_extension(extension)
        if ext in self.known_extensions and self.precedence_for(ext) is Precedence.EXTENSION:
            return ext
        return None

    def _first_known(self, result: SniffResult) -> str | None:
        for candidate in result.candidates:
            if candidate in self.known_extensions:
                return candidate
        return None

    def detect(self, extension: str | None, prefix: bytes) -> str:
        """
        Pick the format id for an input.

        Raises:
            UnsupportedFormat: If neither the extension nor the content matches
        """
        ext = normalize_extension(extension)
        decided = self.resolve_extension(ext)
        if decided:
            return decided

        result = sniff(prefix[: self.prefix_size], truncated=len(prefix) > self.prefix_size)
        sniffed = self._first_known(result)

        if ext in self.known_extensions:
            if sniffed and result.confident and sniffed != ext:
                logger.debug(f"Content ({result.summary}) overrides extension .{ext} -> {sniffed}")
                return sniffed
            return ext

        if sniffed:
            return sniffed

        raise UnsupportedFormat(
            f"Unsupported format (extension: {ext or 'none'}, content: {result.summary})",
            extension=ext,
            sniff_summary=result.summary,
        )
