"""Converter registry: maps format ids to converters and dispatches to them."""

import logging
from collections.abc import Iterable

from pagemark.exceptions import UnsupportedFormat
from pagemark.models import ConversionOptions, Document
from pagemark.services.converters.base import BaseConverter
from pagemark.services.detection import normalize_extension
from pagemark.services.storage import SourceHandle

logger = logging.getLogger(__name__)


class ConverterRegistry:
    """
    Lookup table from format id (a normalized extension) to converter.

    Many extensions may map to one converter instance. Within an extension
    the most recently registered converter wins. The registry is filled at
    startup and only read afterwards; use ``copy`` to derive a modified one.
    """

    def __init__(self, converters: Iterable[BaseConverter] | None = None):
        self._converters: dict[str, BaseConverter] = {}
        for converter in converters or ():
            self.register(converter)

    def register(self, converter: BaseConverter) -> None:
        for extension in converter.supported_extensions():
            key = normalize_extension(extension)
            if not key:
                continue
            previous = self._converters.get(key)
            if previous is not None and previous is not converter:
                logger.debug(f"Converter for .{key} replaced: {previous!r} -> {converter!r}")
            self._converters[key] = converter

    def resolve(self, format_id: str) -> BaseConverter:
        key = normalize_extension(format_id)
        converter = self._converters.get(key) if key else None
        if converter is None:
            raise UnsupportedFormat(
                f"No converter registered for format: {format_id}", extension=key
            )
        return converter

    def extensions(self) -> frozenset[str]:
        return frozenset(self._converters)

    def copy(self) -> "ConverterRegistry":
        clone = ConverterRegistry()
        clone._converters = dict(self._converters)
        return clone

    def __contains__(self, format_id: str) -> bool:
        return normalize_extension(format_id) in self._converters

    def __len__(self) -> int:
        return len(self._converters)

    async def dispatch(
        self,
        format_id: str,
        source: bytes | SourceHandle,
        options: ConversionOptions,
    ) -> Document:
        """
        Run the converter registered for ``format_id`` on bytes or a source handle.

        Converter errors propagate unchanged.
        """
        converter = self.resolve(format_id)
        options = options.with_extension(normalize_extension(format_id))
        if isinstance(source, SourceHandle):
            return await converter.convert(source, options)
        return await converter.convert_bytes(source, options)
