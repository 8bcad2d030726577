"""Format converters producing the common Document model."""

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
from pagemark.services.converters.pdf import PdfConverter
from pagemark.services.converters.slides import PptxConverter
from pagemark.services.converters.spreadsheet import (
    SpreadsheetConverter,
    SpreadsheetTemplateConverter,
)
from pagemark.services.converters.text import CodeConverter, MarkdownConverter, TextConverter
from pagemark.services.converters.word import DocxConverter, DocxTemplateConverter

__all__ = [
    "ArchiveConverter",
    "BaseConverter",
    "CodeConverter",
    "CsvConverter",
    "DocxConverter",
    "DocxTemplateConverter",
    "EmailConverter",
    "EpubConverter",
    "FeedConverter",
    "HtmlConverter",
    "ImageConverter",
    "JsonConverter",
    "MarkdownConverter",
    "NotebookConverter",
    "PdfConverter",
    "PptxConverter",
    "SpreadsheetConverter",
    "SpreadsheetTemplateConverter",
    "SqliteConverter",
    "TextConverter",
    "TomlConverter",
    "XmlConverter",
    "YamlConverter",
]
