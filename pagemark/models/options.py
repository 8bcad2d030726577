"""Per-call conversion options and the visual-description boundary types."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace

from pagemark.enums import DescriptionPurpose


@dataclass(frozen=True)
class ImagePayload:
    """An image handed to the visual-description capability."""

    data: bytes = field(repr=False)
    mime_type: str
    purpose: DescriptionPurpose = DescriptionPurpose.IMAGE
    file_name: str | None = None


# Injected capability: takes an image payload, returns descriptive text.
# May raise; callers degrade gracefully.
VisualDescriber = Callable[[ImagePayload], Awaitable[str]]


@dataclass(frozen=True)
class ConversionOptions:
    """Options passed into every conversion call.

    A value, never global state. Derived options (an archive entry, a
    resolved extension) are produced with ``dataclasses.replace``.
    """

    file_extension: str | None = None
    url: str | None = None
    describer: VisualDescriber | None = field(default=None, repr=False, compare=False)
    force_llm_ocr: bool = False
    extract_images: bool = True
    merge_multipage_tables: bool = False
    # Name of the file or archive entry being converted, used for titles and prompts
    source_name: str | None = None
    # Archive nesting level of this call; 0 for a top-level conversion
    archive_depth: int = 0

    def with_extension(self, extension: str) -> "ConversionOptions":
        return replace(self, file_extension=extension)

    def for_entry(self, name: str, extension: str) -> "ConversionOptions":
        """Options for an archive entry one nesting level below this call."""
        return replace(
            self,
            file_extension=extension,
            source_name=name,
            archive_depth=self.archive_depth + 1,
        )
