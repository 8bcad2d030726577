"""Tests for the command-line entry point."""

import pytest

from pagemark.cli import build_options, build_parser, run

from conftest import make_png, make_zip


def _args(*argv: str):
    return build_parser().parse_args(list(argv))


class TestBuildOptions:
    """Tests for mapping flags to conversion options."""

    def test_defaults(self):
        """Test no flags gives plain options without a describer."""
        options = build_options(_args("report.pdf"))

        assert options.describer is None
        assert options.extract_images is True
        assert options.merge_multipage_tables is False
        assert options.file_extension is None

    def test_flags(self):
        """Test each flag reaches the options."""
        options = build_options(
            _args("scan", "--extension", "pdf", "--force-ocr", "--merge-tables", "--no-images")
        )

        assert options.file_extension == "pdf"
        assert options.force_llm_ocr is True
        assert options.describer is not None
        assert options.merge_multipage_tables is True
        assert options.extract_images is False


class TestRun:
    """Tests for running a conversion from parsed arguments."""

    @pytest.mark.asyncio
    async def test_writes_markdown_to_stdout(self, tmp_path, capsys):
        """Test markdown goes to stdout when no output file is given."""
        source = tmp_path / "notes.md"
        source.write_text("# Notes\n\nSome text.\n")

        code = await run(_args(str(source)))

        assert code == 0
        assert capsys.readouterr().out == "# Notes\n\nSome text.\n"

    @pytest.mark.asyncio
    async def test_writes_output_and_images(self, tmp_path):
        """Test the output file is written with extracted images beside it."""
        source = tmp_path / "pics.zip"
        source.write_bytes(make_zip({"logo.png": make_png(), "readme.txt": b"hello"}))
        output = tmp_path / "out" / "pics.md"

        code = await run(_args(str(source), "-o", str(output)))

        assert code == 0
        markdown = output.read_text()
        assert "images/e1_img1.png" in markdown
        assert "hello" in markdown
        assert (tmp_path / "out" / "images" / "e1_img1.png").exists()

    @pytest.mark.asyncio
    async def test_conversion_error_returns_failure(self, tmp_path, capsys):
        """Test a conversion error is reported on stderr with a non-zero code."""
        source = tmp_path / "blob.qqq"
        source.write_bytes(b"\x00\x01\x02")

        code = await run(_args(str(source)))

        assert code == 1
        assert "UnsupportedFormat" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_lists_formats(self, capsys):
        """Test --formats prints one extension per line."""
        code = await run(_args("--formats"))

        lines = capsys.readouterr().out.splitlines()
        assert code == 0
        assert "pdf" in lines
        assert lines == sorted(lines)
