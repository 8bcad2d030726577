"""Conversion facade: detection, dispatch, archive recursion and post-processing."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import replace
from pathlib import Path

from pagemark.config import Settings, settings
from pagemark.enums import Precedence
from pagemark.models import ConversionOptions, Document
from pagemark.services.converters.archive import ArchiveConverter
from pagemark.services.converters.base import BaseConverter
from pagemark.services.converters.data import (
    JsonConverter,
    TomlConverter,
    XmlConverter,
    YamlConverter,
)
from pagemark.services.converters.database import SqliteConverter
from pagemark.services.converters.delimited import CsvConverter
from pagemark.services.converters.ebook import EpubConverter
from pagemark.services.converters.feeds import FeedConverter
from pagemark.services.converters.html import HtmlConverter
from pagemark.services.converters.image import ImageConverter
from pagemark.services.converters.mail import EmailConverter
from pagemark.services.converters.notebook import NotebookConverter
from pagemark.services.converters.pdf import FallbackThresholds, PdfConverter
from pagemark.services.converters.slides import PptxConverter
from pagemark.services.converters.spreadsheet import (
    SpreadsheetConverter,
    SpreadsheetTemplateConverter,
)
from pagemark.services.converters.text import CodeConverter, MarkdownConverter, TextConverter
from pagemark.services.converters.word import DocxConverter, DocxTemplateConverter
from pagemark.services.detection import FormatDetector, extension_from_name
from pagemark.services.registry import ConverterRegistry
from pagemark.services.storage import LocalFileStorage, SourceHandle, Storage
from pagemark.services.table_merge import merge_multipage_tables

logger = logging.getLogger(__name__)


class ConversionService:
    """
    Convert files and byte buffers into Documents.

    The registry and detector are built once here. ``register_converter``
    swaps in a modified copy, so conversions already running keep the
    registry they started with. The service is also the entry converter the
    archive engine recurses through.
    """

    def __init__(
        self,
        storage: Storage | None = None,
        converters: Iterable[BaseConverter] | None = None,
        settings: Settings = settings,
        precedence: Mapping[str, Precedence] | None = None,
    ):
        self.storage = storage or LocalFileStorage()
        self.settings = settings
        self.precedence = dict(precedence or {})
        if converters is None:
            converters = self.default_converters()
        self.registry = ConverterRegistry(converters)
        self.detector = self._build_detector(self.registry)

    def default_converters(self) -> list[BaseConverter]:
        """Every built-in converter, configured from this service's settings."""
        config = self.settings
        return [
            TextConverter(),
            MarkdownConverter(),
            CodeConverter(),
            JsonConverter(),
            YamlConverter(),
            TomlConverter(),
            XmlConverter(),
            CsvConverter(),
            HtmlConverter(),
            FeedConverter(),
            EmailConverter(),
            NotebookConverter(),
            SqliteConverter(),
            SpreadsheetConverter(
                max_rows=config.spreadsheet_max_rows, max_cols=config.spreadsheet_max_cols
            ),
            SpreadsheetTemplateConverter(
                max_rows=config.spreadsheet_max_rows, max_cols=config.spreadsheet_max_cols
            ),
            DocxConverter(),
            DocxTemplateConverter(),
            PptxConverter(),
            EpubConverter(),
            ImageConverter(max_image_size_bytes=config.max_image_size_bytes),
            PdfConverter(
                thresholds=FallbackThresholds.from_settings(config),
                render_dpi=config.pdf_render_dpi,
            ),
            ArchiveConverter(
                self,
                max_depth=config.max_archive_depth,
                max_entries=config.max_archive_entries,
                max_entry_size=config.max_entry_size_bytes,
                concurrency=config.archive_concurrency,
            ),
        ]

    def _build_detector(self, registry: ConverterRegistry) -> FormatDetector:
        return FormatDetector(
            registry.extensions(),
            precedence=self.precedence,
            prefix_size=self.settings.sniff_prefix_bytes,
        )

    def register_converter(self, converter: BaseConverter) -> None:
        """Add or override a converter for the extensions it declares."""
        registry = self.registry.copy()
        registry.register(converter)
        self.registry = registry
        self.detector = self._build_detector(registry)
        logger.info(f"Registered {converter!r} for {sorted(converter.supported_extensions())}")

    def supported_extensions(self) -> list[str]:
        return sorted(self.registry.extensions())

    def detect_format(self, name: str, data: bytes) -> str:
        """Format id for an archive entry or buffer, from its name and leading bytes."""
        return self.detector.detect(extension_from_name(name), data)

    async def convert(
        self, path: str | Path, options: ConversionOptions | None = None
    ) -> Document:
        """
        Convert the file at ``path`` in this service's storage.

        When the extension alone decides the format the converter reads the
        source itself; otherwise the bytes are read once and sniffed.

        Raises:
            UnsupportedFormat: If no converter matches the extension or content
            IoError: If the storage read fails
            ParseError: If the content is malformed for its format
            EncodingError: If text content cannot be decoded
        """
        options = options or ConversionOptions()
        registry, detector = self.registry, self.detector

        source = SourceHandle(self.storage, str(path))
        if options.source_name is None:
            options = replace(options, source_name=source.name)
        extension = options.file_extension or extension_from_name(source.name)

        format_id = detector.resolve_extension(extension)
        if format_id is not None:
            logger.debug(f"Converting {source.path} as {format_id} (extension)")
            document = await registry.dispatch(format_id, source, options)
        else:
            data = await self.storage.read(source.path)
            format_id = detector.detect(extension, data)
            logger.debug(f"Converting {source.path} as {format_id} (content)")
            document = await registry.dispatch(format_id, data, options)

        return self._finish(document, options)

    async def convert_bytes(
        self, data: bytes, options: ConversionOptions | None = None
    ) -> Document:
        """Convert an in-memory buffer; the extension comes from the options or the source name."""
        options = options or ConversionOptions()
        registry, detector = self.registry, self.detector

        extension = options.file_extension or extension_from_name(options.source_name)
        format_id = detector.detect(extension, data)
        document = await registry.dispatch(format_id, data, options)
        return self._finish(document, options)

    async def convert_entry(
        self,
        name: str,
        data: bytes,
        options: ConversionOptions,
        format_id: str | None = None,
    ) -> Document:
        """Convert one archive entry one nesting level below ``options``."""
        format_id = format_id or self.detect_format(name, data)
        document = await self.registry.dispatch(
            format_id, data, options.for_entry(name, format_id)
        )
        return self._finish(document, options)

    async def convert_to_markdown(
        self,
        path: str | Path,
        options: ConversionOptions | None = None,
        image_dir: str | None = "images",
    ) -> str:
        document = await self.convert(path, options)
        return document.to_markdown(image_dir=image_dir)

    def _finish(self, document: Document, options: ConversionOptions) -> Document:
        # Archive entries were merged one by one in convert_entry
        if options.merge_multipage_tables and document.metadata.get("source_type") != "archive":
            document = merge_multipage_tables(document)
        return document
