"""Exception taxonomy for document conversion.

Top-level conversions surface exactly one of these. Archive entries and PDF
page fallbacks downgrade some of them to diagnostics instead.
"""


class ConversionError(Exception):
    """Base class for conversion errors."""

    pass


class UnsupportedFormat(ConversionError):
    """No detector or registry match for the input.

    Carries the attempted extension and a summary of what content sniffing saw.
    """

    def __init__(
        self,
        message: str,
        extension: str | None = None,
        sniff_summary: str | None = None,
    ):
        super().__init__(message)
        self.extension = extension
        self.sniff_summary = sniff_summary


class ParseError(ConversionError):
    """Malformed content for a recognized format."""

    pass


class IoError(ConversionError):
    """Storage read failure."""

    pass


class EncodingError(ConversionError):
    """Text decoding failure."""

    pass


class RecursionLimitExceeded(ConversionError):
    """Archive nesting deeper than the configured maximum."""

    def __init__(self, depth: int, max_depth: int):
        super().__init__(f"Archive nesting depth {depth} exceeds maximum of {max_depth}")
        self.depth = depth
        self.max_depth = max_depth


class ExternalCapabilityError(ConversionError):
    """The visual-description capability failed."""

    pass


# Errors an archive entry may fail with without failing the whole archive
ARCHIVE_TOLERATED_ERRORS = (
    UnsupportedFormat,
    ParseError,
    IoError,
    EncodingError,
    RecursionLimitExceeded,
    ExternalCapabilityError,
)
