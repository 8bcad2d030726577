"""Tests for standalone image conversion."""

import pytest

from pagemark.enums import DescriptionPurpose
from pagemark.exceptions import ParseError
from pagemark.models import ConversionOptions, ImageBlock
from pagemark.services.converters.image import ImageConverter

from conftest import make_png


class TestImageConverter:
    """Tests for ImageConverter."""

    @pytest.mark.asyncio
    async def test_image_without_describer(self):
        """Test the image becomes a single undescribed image block."""
        document = await ImageConverter().convert_bytes(
            make_png(6, 4), ConversionOptions(source_name="photos/chart.png")
        )

        assert document.title == "chart.png"
        assert len(document.pages) == 1
        block = document.pages[0].blocks[0]
        assert isinstance(block, ImageBlock)
        assert block.image.id == "img1"
        assert block.image.mime_type == "image/png"
        assert (block.image.width, block.image.height) == (6, 4)
        assert block.image.description is None
        assert document.metadata["image_format"] == "PNG"

    @pytest.mark.asyncio
    async def test_image_described(self, describer):
        """Test the describer is called once with the image payload."""
        document = await ImageConverter().convert_bytes(
            make_png(), ConversionOptions(describer=describer, source_name="chart.png")
        )

        assert document.images()[0].description == "Described image"
        describer.assert_awaited_once()
        payload = describer.call_args.args[0]
        assert payload.purpose == DescriptionPurpose.IMAGE
        assert payload.file_name == "chart.png"

    @pytest.mark.asyncio
    async def test_describer_failure_keeps_image(self, failing_describer):
        """Test a failed description leaves the image undescribed."""
        document = await ImageConverter().convert_bytes(
            make_png(), ConversionOptions(describer=failing_describer)
        )

        assert len(document.images()) == 1
        assert document.images()[0].description is None

    @pytest.mark.asyncio
    async def test_oversized_image_not_described(self, describer):
        """Test images above the size limit skip description."""
        document = await ImageConverter(max_image_size_bytes=10).convert_bytes(
            make_png(), ConversionOptions(describer=describer)
        )

        assert document.images()[0].description is None
        describer.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_markdown_links_image(self, describer):
        """Test the rendered markdown links the image and includes its description."""
        document = await ImageConverter().convert_bytes(
            make_png(), ConversionOptions(describer=describer, source_name="chart.png")
        )

        markdown = document.to_markdown(image_dir="images")

        assert "![chart.png](images/img1.png)" in markdown
        assert "Described image" in markdown

    @pytest.mark.asyncio
    async def test_invalid_image(self):
        """Test undecodable bytes raise ParseError."""
        with pytest.raises(ParseError):
            await ImageConverter().convert_bytes(b"not an image", ConversionOptions())
