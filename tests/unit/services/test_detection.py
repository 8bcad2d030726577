"""Tests for format detection."""

import gzip

import pytest

from pagemark.enums import Precedence
from pagemark.exceptions import UnsupportedFormat
from pagemark.services.detection import (
    FormatDetector,
    extension_from_name,
    normalize_extension,
    sniff,
)

from conftest import make_png, make_zip

KNOWN = ["txt", "xml", "rss", "atom", "json", "pdf", "zip", "docx", "dotx", "png", "csv", "gz"]


@pytest.fixture
def detector():
    return FormatDetector(KNOWN)


class TestExtensions:
    """Tests for extension normalization."""

    def test_normalize_extension(self):
        """Test leading dots and case are stripped."""
        assert normalize_extension(".PDF") == "pdf"
        assert normalize_extension("csv") == "csv"
        assert normalize_extension("") is None
        assert normalize_extension(None) is None

    def test_extension_from_name(self):
        """Test the last suffix of a path is used."""
        assert extension_from_name("docs/Report.Final.DOCX") == "docx"
        assert extension_from_name("README") is None

    def test_compound_extension(self):
        """Test compound tar suffixes are recognised as a whole."""
        assert extension_from_name("backup.tar.gz") == "tar.gz"
        assert extension_from_name("data.gz") == "gz"


class TestSniff:
    """Tests for content sniffing."""

    def test_pdf_header(self):
        """Test the PDF header is a confident match."""
        result = sniff(b"%PDF-1.7\n%...")
        assert result.format_id == "pdf"
        assert result.confident is True

    def test_png_signature(self):
        """Test a real PNG is recognised."""
        assert sniff(make_png()).format_id == "png"

    def test_zip_with_word_members(self):
        """Test a zip containing word/ members is reported as docx, then zip."""
        data = make_zip({"[Content_Types].xml": b"<Types/>", "word/document.xml": b"<w/>"})
        assert sniff(data).candidates == ("docx", "zip")

    def test_plain_zip(self):
        """Test an ordinary zip is reported as zip."""
        assert sniff(make_zip({"a.txt": b"hello"})).candidates == ("zip",)

    def test_gzip_magic(self):
        """Test gzip magic bytes are recognised."""
        assert sniff(gzip.compress(b"hello")).format_id == "gz"

    def test_rss_root(self):
        """Test an XML document with an rss root is reported as rss, then xml."""
        result = sniff(b'<?xml version="1.0"?>\n<rss version="2.0"><channel/></rss>')
        assert result.candidates == ("rss", "xml")

    def test_atom_root_with_namespace_prefix(self):
        """Test a prefixed feed root is reported as atom."""
        result = sniff(b'<atom:feed xmlns:atom="http://www.w3.org/2005/Atom"></atom:feed>')
        assert result.format_id == "atom"

    def test_json_object(self):
        """Test JSON objects are confident matches."""
        assert sniff(b'  {"a": 1}').candidates == ("json",)

    def test_notebook(self):
        """Test notebook JSON is reported as ipynb, then json."""
        assert sniff(b'{"cells": [], "nbformat": 4}').candidates == ("ipynb", "json")

    def test_braced_prose_is_text(self):
        """Test text that merely opens with a brace is not taken for JSON."""
        result = sniff(b"{draft} meeting notes for monday")
        assert result.candidates == ("txt",)
        assert result.confident is False

    def test_json_lines_is_text(self):
        """Test several JSON values on separate lines are not one JSON document."""
        result = sniff(b'{"level": "info"}\n{"level": "warn"}\n')
        assert result.candidates == ("txt",)
        assert result.confident is False

    def test_cut_off_json_is_weak(self):
        """Test a JSON prefix cut off mid-value is a json candidate without confidence."""
        result = sniff(b'{"a": [1, 2', truncated=True)
        assert result.candidates == ("json",)
        assert result.confident is False

    def test_cut_off_notebook_is_weak(self):
        """Test a cut-off notebook prefix still lists ipynb first."""
        result = sniff(b'{"nbformat": 4, "cells": [{"source": "unfinish', truncated=True)
        assert result.candidates == ("ipynb", "json")
        assert result.confident is False

    def test_malformed_json_without_truncation_is_text(self):
        """Test a complete input that fails to parse is plain text."""
        assert sniff(b'{"a": [1, 2').candidates == ("txt",)

    def test_plain_text_is_not_confident(self):
        """Test plain UTF-8 text is a weak signal."""
        result = sniff("Grüße aus Köln".encode())
        assert result.candidates == ("txt",)
        assert result.confident is False

    def test_truncated_multibyte_character(self):
        """Test a prefix cut inside a multi-byte character still reads as text."""
        assert sniff("Köln".encode()[:2]).format_id == "txt"

    def test_binary_noise(self):
        """Test unknown binary content has no candidates and a hex summary."""
        result = sniff(b"\x00\x01\x02\x03garbage")
        assert result.candidates == ()
        assert "00 01 02 03" in result.summary

    def test_empty(self):
        """Test empty input has no candidates."""
        assert sniff(b"").candidates == ()


class TestFormatDetector:
    """Tests for the extension/content decision."""

    def test_known_extension_skips_sniffing(self, detector):
        """Test a format-unique extension wins even when the content disagrees."""
        assert detector.detect("csv", b"%PDF-1.4") == "csv"

    def test_template_extension_kept(self, detector):
        """Test a template resolves to its own format, not the zip container's."""
        data = make_zip({"word/document.xml": b"<w/>"})
        assert detector.detect(".dotx", data) == "dotx"

    def test_generic_xml_refined_by_content(self, detector):
        """Test a .xml file whose root is rss is detected as rss."""
        data = b'<?xml version="1.0"?><rss><channel><title>t</title></channel></rss>'
        assert detector.detect("xml", data) == "rss"

    def test_generic_xml_kept_without_better_match(self, detector):
        """Test a .xml file with an unrecognised root stays xml."""
        assert detector.detect("xml", b"<?xml version='1.0'?><catalog/>") == "xml"

    def test_mislabelled_txt_with_confident_content(self, detector):
        """Test confident content overrides a generic extension."""
        assert detector.detect("txt", b"%PDF-1.4\n") == "pdf"

    def test_missing_extension_uses_content(self, detector):
        """Test content alone decides when there is no extension."""
        assert detector.detect(None, make_png()) == "png"

    def test_unknown_extension_uses_content(self, detector):
        """Test an unregistered extension falls back to sniffing."""
        assert detector.detect("weird", b'{"a": 1}') == "json"

    def test_unregistered_specific_format_falls_back(self):
        """Test a pptx zip is converted as zip when pptx is not registered."""
        data = make_zip({"ppt/presentation.xml": b"<p/>"})
        assert FormatDetector(["zip"]).detect(None, data) == "zip"

    def test_no_match_raises(self, detector):
        """Test unsupported input raises with the extension and a sniff summary."""
        with pytest.raises(UnsupportedFormat) as exc_info:
            detector.detect("xyz", b"\x00\x01\x02binary")

        assert exc_info.value.extension == "xyz"
        assert "no signature matched" in exc_info.value.sniff_summary

    def test_precedence_override(self):
        """Test the precedence table can make an extension defer to content."""
        detector = FormatDetector(["csv", "json"], precedence={"csv": Precedence.CONTENT})

        assert detector.resolve_extension("csv") is None
        assert detector.detect("csv", b'{"a": 1}') == "json"

    def test_prefix_size_limits_sniffing(self):
        """Test only the configured prefix is inspected."""
        detector = FormatDetector(["json"], prefix_size=4)

        with pytest.raises(UnsupportedFormat):
            detector.detect(None, b"    \x00{}")

    def test_braced_text_file_keeps_extension(self, detector):
        """Test a .txt file opening with a brace stays text."""
        assert detector.detect("txt", b"{draft} meeting notes for monday") == "txt"

    def test_json_lines_log_keeps_extension(self):
        """Test a JSON-lines log is not rerouted to the JSON converter."""
        detector = FormatDetector(["log", "json"])
        data = b'{"level": "info", "msg": "start"}\n{"level": "warn", "msg": "slow"}\n'

        assert detector.detect("log", data) == "log"

    def test_complete_json_in_txt_is_rerouted(self, detector):
        """Test a .txt file holding one complete JSON object resolves to json."""
        assert detector.detect("txt", b'{"name": "report", "pages": 3}') == "json"

    def test_long_json_cut_by_prefix_keeps_extension(self):
        """Test JSON longer than the sniffed prefix is only a weak match."""
        detector = FormatDetector(["txt", "json"], prefix_size=16)
        data = b'{"items": [' + b", ".join(b"%d" % i for i in range(100)) + b"]}"

        assert detector.detect("txt", data) == "txt"
        assert detector.detect(None, data) == "json"
