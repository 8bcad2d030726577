"""Common contract implemented by every converter."""

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import ClassVar

from pagemark.exceptions import EncodingError
from pagemark.models import ConversionOptions, Document
from pagemark.services.storage import SourceHandle


def decode_text(data: bytes, source_name: str | None = None) -> str:
    """Decode UTF-8 input, dropping a byte-order mark."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise EncodingError(f"{source_name or 'Input'} is not valid UTF-8: {e}") from e


def title_from_name(source_name: str | None) -> str | None:
    """File name without directories, used as a fallback document title."""
    if not source_name:
        return None
    return source_name.replace("\\", "/").rsplit("/", 1)[-1] or None


class BaseConverter(ABC):
    """
    A converter for one or more formats.

    Subclasses declare the extensions they handle in SUPPORTED_EXTENSIONS and
    implement ``convert_bytes``. Converters hold no per-call state, so a
    single instance serves concurrent conversions.
    """

    SUPPORTED_EXTENSIONS: ClassVar[frozenset[str]] = frozenset()

    def supported_extensions(self) -> set[str]:
        return set(self.SUPPORTED_EXTENSIONS)

    async def convert(self, source: SourceHandle, options: ConversionOptions) -> Document:
        """Read the source from its storage, then convert the bytes."""
        data = await source.storage.read(source.path)
        if options.source_name is None:
            options = replace(options, source_name=source.name)
        return await self.convert_bytes(data, options)

    @abstractmethod
    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        """
        Convert raw bytes to a Document.

        Raises:
            ParseError: If the content is malformed for this format
            EncodingError: If text content cannot be decoded
        """
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
