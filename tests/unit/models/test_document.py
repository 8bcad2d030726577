"""Tests for the document model and its Markdown rendering."""

import pytest
from unittest.mock import AsyncMock

from pagemark.models import (
    CodeBlock,
    ContentBlock,
    ConversionOptions,
    DiagnosticBlock,
    Document,
    ExtractedImage,
    HeadingBlock,
    ImageBlock,
    ListBlock,
    MarkdownBlock,
    Page,
    QuoteBlock,
    TableBlock,
    TextBlock,
)


def _image(image_id: str = "img1", description: str | None = None) -> ExtractedImage:
    return ExtractedImage(
        id=image_id,
        data=b"\x89PNG fake",
        mime_type="image/png",
        alt_text="chart",
        description=description,
    )


class TestContentBlocks:
    """Tests for rendering individual content blocks."""

    def test_content_block_is_abstract(self):
        """Test the block base class cannot be instantiated or subclassed without rendering."""
        with pytest.raises(TypeError):
            ContentBlock()

        class Unrendered(ContentBlock):
            pass

        with pytest.raises(TypeError):
            Unrendered()

    def test_heading_levels(self):
        """Test headings render with one hash per level, clamped to six."""
        assert HeadingBlock(level=2, text="Intro").to_markdown() == "## Intro\n"
        assert HeadingBlock(level=9, text="Deep").to_markdown() == "###### Deep\n"

    def test_table_renders_pipe_table(self):
        """Test tables render a header, separator and padded rows."""
        table = TableBlock(headers=["Name", "Age"], rows=[["Ann", "31"], ["Bo"]])

        assert table.to_markdown() == (
            "| Name | Age |\n"
            "| --- | --- |\n"
            "| Ann | 31 |\n"
            "| Bo |  |\n"
        )

    def test_table_escapes_pipes(self):
        """Test pipe characters inside cells are escaped."""
        table = TableBlock(headers=["Expr"], rows=[["a|b"]])
        assert "a\\|b" in table.to_markdown()

    def test_empty_table_renders_nothing(self):
        """Test a table without cells produces no output."""
        assert TableBlock(headers=[]).to_markdown() == ""

    def test_lists(self):
        """Test ordered and unordered list markers."""
        assert ListBlock(items=["a", "b"]).to_markdown() == "- a\n- b\n"
        assert ListBlock(items=["a", "b"], ordered=True).to_markdown() == "1. a\n2. b\n"

    def test_code_block_with_language(self):
        """Test code blocks are fenced with their language tag."""
        assert CodeBlock(code="x = 1\n", language="python").to_markdown() == (
            "```python\nx = 1\n```\n"
        )

    def test_code_block_containing_fence(self):
        """Test code that contains a fence gets a longer one."""
        rendered = CodeBlock(code="```\ninner\n```").to_markdown()
        assert rendered.startswith("````\n")
        assert rendered.endswith("````\n")

    def test_quote_prefixes_every_line(self):
        """Test each quoted line starts with a marker."""
        assert QuoteBlock("one\ntwo").to_markdown() == "> one\n> two\n"

    def test_markdown_passthrough(self):
        """Test raw Markdown is emitted unchanged with a trailing newline."""
        assert MarkdownBlock("**bold**").to_markdown() == "**bold**\n"

    def test_image_reference_and_description(self):
        """Test images link into the image directory and carry their description."""
        block = ImageBlock(_image(description="A bar chart"))

        rendered = block.to_markdown("images")

        assert rendered.startswith("![chart](images/img1.png)\n")
        assert "A bar chart" in rendered

    def test_diagnostic_block(self):
        """Test diagnostics render as a quoted note naming the source."""
        block = DiagnosticBlock(message="bad zip", source="inner.zip", error_type="ParseError")
        assert block.to_markdown() == "> **Not converted:** `inner.zip` bad zip\n"


class TestPage:
    """Tests for pages."""

    def test_marker_includes_label(self):
        """Test page markers show the label when present."""
        assert Page(number=3).marker == "Page 3"
        assert Page(number=3, label="notes.txt").marker == "Page 3: notes.txt"

    def test_to_text_only_replaces_images(self):
        """Test images become text placeholders using their description."""
        page = Page(number=1, blocks=[TextBlock("hi"), ImageBlock(_image(description="A cat"))])

        text_page = page.to_text_only()

        assert text_page.blocks[1] == TextBlock("[Image: A cat]")
        assert isinstance(page.blocks[1], ImageBlock)

    def test_rendered_page_image_listed_first(self):
        """Test a page render is listed before the block images."""
        render = _image("page1", description="Scanned text")
        page = Page(number=1, blocks=[ImageBlock(_image())], rendered_image=render)

        assert [image.id for image in page.images()] == ["page1", "img1"]

    def test_rendered_page_linked_in_markdown(self):
        """Test a rendered page links its render ahead of the transcription only once."""
        render = _image("page2", description="Scanned text")
        page = Page(number=2, blocks=[MarkdownBlock("Scanned text")], rendered_image=render)

        markdown = page.to_markdown("images")

        assert markdown == "![Page 2](images/page2.png)\n\nScanned text\n"

    def test_to_text_only_drops_page_render(self):
        """Test the text-only copy keeps the transcription without the render."""
        render = _image("page1", description="Scanned text")
        page = Page(number=1, blocks=[MarkdownBlock("Scanned text")], rendered_image=render)

        text_page = page.to_text_only()

        assert text_page.rendered_image is None
        assert text_page.to_markdown("images") == "Scanned text\n"
        assert page.rendered_image is render


class TestDocument:
    """Tests for documents."""

    def test_add_page_requires_increasing_numbers(self):
        """Test pages cannot be added out of order."""
        document = Document()
        document.add_page(Page(number=1))

        with pytest.raises(ValueError):
            document.add_page(Page(number=1))

    def test_new_page_numbers_sequentially(self):
        """Test new pages continue from the last page number."""
        document = Document()
        first = document.new_page()
        second = document.new_page(label="Sheet2")

        assert (first.number, second.number) == (1, 2)
        assert second.label == "Sheet2"
        document.check_page_numbers()

    def test_check_page_numbers_rejects_bad_start(self):
        """Test the first page must be numbered 1."""
        document = Document(pages=[Page(number=2)])

        with pytest.raises(ValueError):
            document.check_page_numbers()

    def test_single_page_markdown(self):
        """Test a single page renders without separators."""
        document = Document(title="Report", pages=[Page(number=1, blocks=[TextBlock("Body")])])

        assert document.to_markdown() == "# Report\n\nBody\n"

    def test_multi_page_markdown_has_separators(self):
        """Test pages are separated with a rule and a page marker comment."""
        document = Document(
            pages=[
                Page(number=1, blocks=[TextBlock("One")]),
                Page(number=2, blocks=[TextBlock("Two")], label="b.txt"),
            ]
        )

        markdown = document.to_markdown()

        assert "<!-- Page 1 -->" in markdown
        assert "<!-- Page 2: b.txt -->" in markdown
        assert markdown.index("One") < markdown.index("Two")
        assert markdown.count("---\n") == 2

    def test_save_images(self, tmp_path):
        """Test every referenced image is written under its filename."""
        document = Document(pages=[Page(number=1, blocks=[ImageBlock(_image())])])

        written = document.save_images(tmp_path / "images")

        assert written == [tmp_path / "images" / "img1.png"]
        assert written[0].read_bytes() == b"\x89PNG fake"

    def test_save_images_includes_page_renders(self, tmp_path):
        """Test page renders linked from the markdown are written too."""
        page = Page(
            number=1,
            blocks=[MarkdownBlock("Scanned text")],
            rendered_image=_image("page1", description="Scanned text"),
        )
        document = Document(pages=[page])

        written = document.save_images(tmp_path / "images")

        assert written == [tmp_path / "images" / "page1.png"]
        assert "images/page1.png" in document.to_markdown()

    @pytest.mark.asyncio
    async def test_with_image_descriptions_skips_page_renders(self):
        """Test only block images are sent for description."""
        page = Page(
            number=1,
            blocks=[ImageBlock(_image())],
            rendered_image=_image("page1"),
        )
        describer = AsyncMock(return_value="A line chart")

        described = await Document(pages=[page]).with_image_descriptions(describer)

        describer.assert_awaited_once()
        assert described.pages[0].blocks[0].image.description == "A line chart"
        assert described.pages[0].rendered_image.description is None

    @pytest.mark.asyncio
    async def test_with_image_descriptions(self):
        """Test undescribed images get descriptions in a copy of the document."""
        original = _image()
        document = Document(pages=[Page(number=1, blocks=[ImageBlock(original)])])
        describer = AsyncMock(return_value="A line chart")

        described = await document.with_image_descriptions(describer)

        assert described.images()[0].description == "A line chart"
        assert original.description is None
        describer.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_with_image_descriptions_tolerates_failure(self):
        """Test a failing describer leaves images undescribed."""
        document = Document(pages=[Page(number=1, blocks=[ImageBlock(_image())])])
        describer = AsyncMock(side_effect=RuntimeError("boom"))

        described = await document.with_image_descriptions(describer)

        assert described.images()[0].description is None


class TestConversionOptions:
    """Tests for conversion options."""

    def test_for_entry_increments_depth(self):
        """Test entry options are one nesting level deeper and carry the entry name."""
        options = ConversionOptions(force_llm_ocr=True)

        entry = options.for_entry("docs/a.csv", "csv")

        assert entry.archive_depth == 1
        assert entry.source_name == "docs/a.csv"
        assert entry.file_extension == "csv"
        assert entry.force_llm_ocr is True
        assert options.archive_depth == 0
