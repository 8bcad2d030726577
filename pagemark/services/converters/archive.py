"""Archive extraction: unpack containers and convert every entry.

Each entry is routed back through the conversion service, so nested archives
re-enter this converter with the nesting depth carried in the options.
Entry failures become diagnostic pages instead of failing the archive.
"""

import asyncio
import bz2
import gzip
import io
import logging
import lzma
import tarfile
import tempfile
import zipfile
from dataclasses import dataclass, replace
from typing import Protocol

import py7zr
import zstandard

from pagemark.config import settings
from pagemark.exceptions import (
    ARCHIVE_TOLERATED_ERRORS,
    ConversionError,
    ParseError,
    RecursionLimitExceeded,
    UnsupportedFormat,
)
from pagemark.models import (
    ContentBlock,
    ConversionOptions,
    DiagnosticBlock,
    Document,
    ExtractedImage,
    ImageBlock,
    Page,
)
from pagemark.services.converters.base import BaseConverter, title_from_name
from pagemark.services.storage import LocalFileStorage

logger = logging.getLogger(__name__)

ZIP_MAGIC = (b"PK\x03\x04", b"PK\x05\x06")
GZIP_MAGIC = b"\x1f\x8b"
BZIP2_MAGIC = b"BZh"
XZ_MAGIC = b"\xfd7zXZ\x00"
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"
SEVEN_ZIP_MAGIC = b"7z\xbc\xaf\x27\x1c"

# Suffixes removed to name the payload of a single-file compressed stream
COMPRESSION_SUFFIXES = (".gz", ".gzip", ".bz2", ".xz", ".zst", ".zstd")

READ_CHUNK_SIZE = 64 * 1024


class EntryConverter(Protocol):
    """What the archive engine needs from the conversion service."""

    def detect_format(self, name: str, data: bytes) -> str: ...

    async def convert_entry(
        self,
        name: str,
        data: bytes,
        options: ConversionOptions,
        format_id: str | None = None,
    ) -> Document: ...


@dataclass
class ArchiveEntry:
    name: str
    data: bytes


@dataclass
class EntryResult:
    entry: ArchiveEntry
    format_id: str | None = None
    document: Document | None = None
    error: ConversionError | None = None
    skip_reason: str | None = None


class EntryLimitExceeded(Exception):
    """Raised internally when an archive lists more entries than allowed."""


def _read_capped(stream, limit: int) -> bytes:
    """Read a decompression stream, failing once more than ``limit`` bytes come out."""
    chunks = []
    total = 0
    while True:
        chunk = stream.read(READ_CHUNK_SIZE)
        if not chunk:
            return b"".join(chunks)
        total += len(chunk)
        if total > limit:
            raise OverflowError(f"decompressed size exceeds {limit} bytes")
        chunks.append(chunk)


def _namespace_image(image: ExtractedImage, prefix: str) -> ExtractedImage:
    return replace(image, id=f"{prefix}_{image.id}")


def _namespace_blocks(blocks: list[ContentBlock], prefix: str) -> list[ContentBlock]:
    return [
        ImageBlock(_namespace_image(block.image, prefix))
        if isinstance(block, ImageBlock)
        else block
        for block in blocks
    ]


def _is_tar(payload: bytes) -> bool:
    return payload[257:262] == b"ustar"


class ArchiveConverter(BaseConverter):
    """
    Convert ZIP, TAR (plain or compressed), single-file gzip/bzip2/xz/zstd
    streams, and 7z archives.
    """

    SUPPORTED_EXTENSIONS = frozenset(
        {
            "zip",
            "tar",
            "gz",
            "gzip",
            "tgz",
            "tar.gz",
            "bz2",
            "tbz",
            "tbz2",
            "tar.bz2",
            "xz",
            "txz",
            "tar.xz",
            "zst",
            "zstd",
            "tzst",
            "tar.zst",
            "7z",
        }
    )

    def __init__(
        self,
        entries: EntryConverter,
        max_depth: int | None = None,
        max_entries: int | None = None,
        max_entry_size: int | None = None,
        concurrency: int | None = None,
    ):
        self.entries = entries
        self.max_depth = max_depth if max_depth is not None else settings.max_archive_depth
        self.max_entries = max_entries or settings.max_archive_entries
        self.max_entry_size = max_entry_size or settings.max_entry_size_bytes
        self.concurrency = concurrency or settings.archive_concurrency

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if options.archive_depth > self.max_depth:
            raise RecursionLimitExceeded(options.archive_depth, self.max_depth)
        if not data:
            raise ParseError("Empty archive")

        skipped: list[dict[str, str]] = []
        archive_format, entries = await self._read_entries(data, options, skipped)

        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(index: int, entry: ArchiveEntry) -> EntryResult:
            async with semaphore:
                return await self._convert_entry(index, entry, options)

        # gather keeps results in entry order regardless of completion order
        results = await asyncio.gather(*[run(i, e) for i, e in enumerate(entries, start=1)])

        return self._assemble(results, archive_format, skipped, options)

    async def _convert_entry(
        self, index: int, entry: ArchiveEntry, options: ConversionOptions
    ) -> EntryResult:
        result = EntryResult(entry=entry)
        try:
            result.format_id = self.entries.detect_format(entry.name, entry.data)
        except UnsupportedFormat as e:
            result.skip_reason = e.sniff_summary or str(e)
            return result

        try:
            result.document = await self.entries.convert_entry(
                entry.name, entry.data, options, format_id=result.format_id
            )
        except ARCHIVE_TOLERATED_ERRORS as e:
            logger.warning(
                f"Archive entry {entry.name} failed: {e}",
                extra={
                    "entry": entry.name,
                    "entry_index": index,
                    "archive": options.source_name,
                    "exception_type": type(e).__name__,
                },
            )
            result.error = e
        except Exception as e:
            logger.error(
                f"Archive entry {entry.name} failed unexpectedly: {type(e).__name__}: {e}",
                exc_info=True,
                extra={
                    "entry": entry.name,
                    "entry_index": index,
                    "archive": options.source_name,
                    "exception_type": type(e).__name__,
                },
            )
            result.error = ParseError(f"Unexpected {type(e).__name__} in {entry.name}: {e}")
        return result

    def _assemble(
        self,
        results: list[EntryResult],
        archive_format: str,
        skipped: list[dict[str, str]],
        options: ConversionOptions,
    ) -> Document:
        document = Document(title=title_from_name(options.source_name))
        entries_meta = []
        failed = []

        for index, result in enumerate(results, start=1):
            name = result.entry.name
            if result.skip_reason is not None:
                skipped.append({"path": name, "reason": result.skip_reason})
                continue

            if result.error is not None:
                failed.append({"path": name, "error": str(result.error)})
                document.add_page(
                    Page(
                        number=document.next_page_number,
                        label=name,
                        blocks=[
                            DiagnosticBlock(
                                message=str(result.error),
                                source=name,
                                error_type=type(result.error).__name__,
                            )
                        ],
                    )
                )
                continue

            entry_doc = result.document
            entries_meta.append(
                {
                    "path": name,
                    "format": result.format_id,
                    "pages": len(entry_doc.pages),
                    "title": entry_doc.title,
                }
            )
            self._splice(document, entry_doc, name, f"e{index}")

        document.metadata = {
            "source_type": "archive",
            "archive_format": archive_format,
            "entry_count": len(results),
            "converted_count": len(entries_meta),
            "entries": entries_meta,
            "failed_entries": failed,
            "skipped_entries": skipped,
        }
        return document

    def _splice(self, document: Document, entry_doc: Document, name: str, prefix: str) -> None:
        """Append an entry's pages, renumbered, with entry-scoped labels and image ids."""
        if not entry_doc.pages:
            document.add_page(Page(number=document.next_page_number, label=name))
            return

        single = len(entry_doc.pages) == 1
        for page in entry_doc.pages:
            if single:
                label = name
            else:
                label = f"{name} > {page.label or page.number}"
            rendered = page.rendered_image
            document.add_page(
                Page(
                    number=document.next_page_number,
                    blocks=_namespace_blocks(page.blocks, prefix),
                    rendered_image=_namespace_image(rendered, prefix) if rendered else None,
                    label=label,
                )
            )

    async def _read_entries(
        self, data: bytes, options: ConversionOptions, skipped: list[dict[str, str]]
    ) -> tuple[str, list[ArchiveEntry]]:
        """Enumerate regular-file entries in archive order."""
        try:
            if data.startswith(ZIP_MAGIC):
                return "zip", self._read_zip(data, skipped)
            if data.startswith(SEVEN_ZIP_MAGIC):
                return "7z", await self._read_7z(data, skipped)
            for magic, archive_format, opener in (
                (GZIP_MAGIC, "gzip", gzip.GzipFile),
                (BZIP2_MAGIC, "bzip2", bz2.BZ2File),
                (XZ_MAGIC, "xz", lzma.LZMAFile),
                (ZSTD_MAGIC, "zstd", None),
            ):
                if data.startswith(magic):
                    return archive_format, self._read_stream(
                        data, archive_format, opener, options, skipped
                    )
            return "tar", self._read_tar(data, skipped)
        except (
            zipfile.BadZipFile,
            tarfile.TarError,
            py7zr.Bad7zFile,
            lzma.LZMAError,
            zstandard.ZstdError,
            EOFError,
            OSError,
            ValueError,
        ) as e:
            raise ParseError(f"Failed to read archive: {e}") from e

    def _check_entry(self, name: str, size: int, count: int, skipped) -> bool:
        if count >= self.max_entries:
            raise EntryLimitExceeded
        if size > self.max_entry_size:
            skipped.append(
                {"path": name, "reason": f"entry size {size} exceeds limit {self.max_entry_size}"}
            )
            return False
        return True

    def _limit_note(self, skipped: list[dict[str, str]]) -> None:
        logger.warning(
            f"Archive entry limit of {self.max_entries} reached, remaining entries skipped"
        )
        skipped.append(
            {"path": "(remaining entries)", "reason": f"entry limit of {self.max_entries} reached"}
        )

    def _read_zip(self, data: bytes, skipped: list[dict[str, str]]) -> list[ArchiveEntry]:
        entries: list[ArchiveEntry] = []
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            try:
                for info in archive.infolist():
                    if info.is_dir():
                        continue
                    if not self._check_entry(info.filename, info.file_size, len(entries), skipped):
                        continue
                    try:
                        with archive.open(info) as member:
                            content = _read_capped(member, self.max_entry_size)
                    except (
                        zipfile.BadZipFile,
                        RuntimeError,
                        NotImplementedError,
                        OverflowError,
                        OSError,
                    ) as e:
                        # Encrypted or corrupt members are skipped, the rest still convert
                        skipped.append({"path": info.filename, "reason": f"unreadable: {e}"})
                        continue
                    entries.append(ArchiveEntry(info.filename, content))
            except EntryLimitExceeded:
                self._limit_note(skipped)
        return entries

    def _read_tar(self, data: bytes, skipped: list[dict[str, str]]) -> list[ArchiveEntry]:
        entries: list[ArchiveEntry] = []
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as archive:
            try:
                for member in archive:
                    if member.isdir():
                        continue
                    name = member.name.removeprefix("./")
                    if not member.isfile():
                        skipped.append({"path": name, "reason": "not a regular file"})
                        continue
                    if not self._check_entry(name, member.size, len(entries), skipped):
                        continue
                    handle = archive.extractfile(member)
                    entries.append(ArchiveEntry(name, handle.read() if handle else b""))
            except EntryLimitExceeded:
                self._limit_note(skipped)
        return entries

    def _read_stream(
        self,
        data: bytes,
        archive_format: str,
        opener,
        options: ConversionOptions,
        skipped: list[dict[str, str]],
    ) -> list[ArchiveEntry]:
        """Decompress a single-file stream; a tar payload is unpacked further."""
        if opener is None:
            stream = zstandard.ZstdDecompressor().stream_reader(io.BytesIO(data))
        else:
            stream = opener(io.BytesIO(data))

        name = self._payload_name(options.source_name)
        with stream:
            try:
                payload = _read_capped(stream, self.max_entry_size)
            except OverflowError as e:
                skipped.append({"path": name, "reason": str(e)})
                return []

        if _is_tar(payload):
            return self._read_tar(payload, skipped)
        return [ArchiveEntry(name, payload)]

    def _payload_name(self, source_name: str | None) -> str:
        name = title_from_name(source_name) or "data"
        lowered = name.lower()
        for suffix in (".tgz", ".tbz", ".tbz2", ".txz", ".tzst"):
            if lowered.endswith(suffix):
                return name[: -len(suffix)] + ".tar"
        for suffix in COMPRESSION_SUFFIXES:
            if lowered.endswith(suffix) and len(name) > len(suffix):
                return name[: -len(suffix)]
        return name

    async def _read_7z(self, data: bytes, skipped: list[dict[str, str]]) -> list[ArchiveEntry]:
        """
        Stage a 7z archive in a temporary directory and read it back through storage.
        """
        with tempfile.TemporaryDirectory(prefix="pagemark-7z-") as staging:
            order = await asyncio.to_thread(self._extract_7z, data, staging, skipped)
            storage = LocalFileStorage(staging)
            listed = [entry for entry in await storage.list() if not entry.is_dir]
            listed.sort(key=lambda entry: order.get(entry.path, len(order)))

            entries: list[ArchiveEntry] = []
            for item in listed:
                if len(entries) >= self.max_entries:
                    self._limit_note(skipped)
                    break
                entries.append(ArchiveEntry(item.path, await storage.read(item.path)))
            return entries

    def _extract_7z(
        self, data: bytes, staging: str, skipped: list[dict[str, str]]
    ) -> dict[str, int]:
        """Extract allowed members; returns each member's position in archive order."""
        with py7zr.SevenZipFile(io.BytesIO(data), mode="r") as archive:
            infos = archive.list()
            allowed = []
            for info in infos:
                if info.is_directory:
                    continue
                if info.uncompressed > self.max_entry_size:
                    skipped.append(
                        {
                            "path": info.filename,
                            "reason": f"entry size {info.uncompressed} exceeds limit "
                            f"{self.max_entry_size}",
                        }
                    )
                    continue
                allowed.append(info.filename)
            if allowed:
                archive.extract(path=staging, targets=allowed)
        return {name: position for position, name in enumerate(allowed)}
