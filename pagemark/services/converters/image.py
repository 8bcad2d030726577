"""Image converter: the image itself plus an optional visual description."""

import io
import logging

from PIL import Image, UnidentifiedImageError

from pagemark.config import settings
from pagemark.enums import DescriptionPurpose
from pagemark.exceptions import ParseError
from pagemark.models import (
    ConversionOptions,
    Document,
    ExtractedImage,
    ImageBlock,
    ImagePayload,
    Page,
)
from pagemark.services.converters.base import BaseConverter, title_from_name

logger = logging.getLogger(__name__)


class ImageConverter(BaseConverter):
    """
    Convert a standalone image file.

    When a describer is supplied the image is described once. A failed or
    skipped description leaves the image undescribed; it never fails the
    conversion.
    """

    SUPPORTED_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp", "bmp", "tiff", "tif"})

    def __init__(self, max_image_size_bytes: int | None = None):
        self.max_image_size_bytes = max_image_size_bytes or settings.max_image_size_bytes

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        try:
            with Image.open(io.BytesIO(data)) as img:
                width, height = img.size
                img_format = img.format or ""
                mime_type = Image.MIME.get(img_format, f"image/{img_format.lower() or 'png'}")
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise ParseError(f"Failed to open image: {e}") from e

        name = title_from_name(options.source_name)
        image = ExtractedImage(
            id="img1",
            data=data,
            mime_type=mime_type,
            width=width,
            height=height,
            alt_text=name,
            page_number=1,
        )

        if options.describer is not None:
            image.description = await self._describe(image, options)

        return Document(
            title=name,
            pages=[Page(number=1, blocks=[ImageBlock(image)])],
            metadata={
                "source_type": "image",
                "image_format": img_format,
                "width": width,
                "height": height,
            },
        )

    async def _describe(self, image: ExtractedImage, options: ConversionOptions) -> str | None:
        if len(image.data) > self.max_image_size_bytes:
            logger.warning(
                f"Image {image.alt_text or image.id} exceeds size limit: "
                f"{len(image.data) / 1024 / 1024:.1f}MB, skipping description"
            )
            return None

        payload = ImagePayload(
            data=image.data,
            mime_type=image.mime_type,
            purpose=DescriptionPurpose.IMAGE,
            file_name=image.alt_text,
        )
        try:
            return await options.describer(payload)
        except Exception as e:
            logger.warning(
                f"Image description failed for {image.alt_text or image.id}: {e}",
                extra={"source": options.source_name, "exception_type": type(e).__name__},
            )
            return None
