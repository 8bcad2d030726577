"""Structured data converters: JSON, YAML, TOML and generic XML.

Each document is validated with its parser and rendered as a fenced code
block. Parser failures surface as ParseError.
"""

import json
import tomllib

import yaml
from lxml import etree

from pagemark.exceptions import ParseError
from pagemark.models import CodeBlock, ConversionOptions, Document, Page
from pagemark.services.converters.base import BaseConverter, decode_text


def _code_document(code: str, language: str) -> Document:
    return Document(
        pages=[Page(number=1, blocks=[CodeBlock(code=code, language=language)])],
        metadata={"source_type": language},
    )


class JsonConverter(BaseConverter):
    SUPPORTED_EXTENSIONS = frozenset({"json"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data.strip():
            return Document(metadata={"source_type": "json"})
        text = decode_text(data, options.source_name)
        try:
            value = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"JSON parse error: {e}") from e
        return _code_document(json.dumps(value, indent=2, ensure_ascii=False), "json")


class YamlConverter(BaseConverter):
    SUPPORTED_EXTENSIONS = frozenset({"yaml", "yml"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data.strip():
            return Document(metadata={"source_type": "yaml"})
        text = decode_text(data, options.source_name)
        try:
            # Validate every document in a multi-document stream
            list(yaml.safe_load_all(text))
        except yaml.YAMLError as e:
            raise ParseError(f"YAML parse error: {e}") from e
        return _code_document(text.strip(), "yaml")


class TomlConverter(BaseConverter):
    SUPPORTED_EXTENSIONS = frozenset({"toml"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data.strip():
            return Document(metadata={"source_type": "toml"})
        text = decode_text(data, options.source_name)
        try:
            tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise ParseError(f"TOML parse error: {e}") from e
        return _code_document(text.strip(), "toml")


class XmlConverter(BaseConverter):
    """XML with no more specific converter, pretty-printed."""

    SUPPORTED_EXTENSIONS = frozenset({"xml"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data.strip():
            return Document(metadata={"source_type": "xml"})
        parser = etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)
        try:
            root = etree.fromstring(data, parser=parser)
        except etree.XMLSyntaxError as e:
            raise ParseError(f"XML parse error: {e}") from e
        pretty = etree.tostring(root, pretty_print=True, encoding="unicode")
        return _code_document(pretty.strip(), "xml")
