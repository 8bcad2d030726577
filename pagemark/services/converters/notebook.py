"""Jupyter notebook converter."""

import json

from pagemark.exceptions import ParseError
from pagemark.models import CodeBlock, ConversionOptions, Document, MarkdownBlock, Page, TextBlock
from pagemark.services.converters.base import BaseConverter, decode_text


def _source(value) -> str:
    """Cell sources and outputs are either a string or a list of lines."""
    if isinstance(value, list):
        return "".join(line for line in value if isinstance(line, str))
    return value if isinstance(value, str) else ""


def _output_text(output: dict) -> str:
    output_type = output.get("output_type")
    if output_type == "stream":
        return _source(output.get("text"))
    if output_type in ("execute_result", "display_data"):
        data = output.get("data")
        return _source(data.get("text/plain")) if isinstance(data, dict) else ""
    if output_type == "error":
        return f"{output.get('ename', 'Error')}: {output.get('evalue', '')}"
    return ""


class NotebookConverter(BaseConverter):
    """Markdown cells pass through; code cells and their text outputs become code blocks."""

    SUPPORTED_EXTENSIONS = frozenset({"ipynb"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data.strip():
            return Document(metadata={"source_type": "notebook"})

        try:
            notebook = json.loads(decode_text(data, options.source_name))
            cells = notebook["cells"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise ParseError(f"Invalid notebook: {e}") from e

        metadata = notebook.get("metadata") or {}
        if not isinstance(cells, list) or not all(isinstance(cell, dict) for cell in cells):
            raise ParseError("Invalid notebook: cells must be a list of objects")
        if not isinstance(metadata, dict):
            raise ParseError("Invalid notebook: metadata must be an object")

        kernelspec = metadata.get("kernelspec")
        if not isinstance(kernelspec, dict):
            kernelspec = {}
        language = kernelspec.get("language") or "python"

        page = Page(number=1)
        for index, cell in enumerate(cells, start=1):
            source = _source(cell.get("source"))
            cell_type = cell.get("cell_type")

            if cell_type == "markdown":
                if source.strip():
                    page.add(MarkdownBlock(source))
            elif cell_type == "code":
                page.add(TextBlock(f"**In [{index}]:**"))
                page.add(CodeBlock(code=source, language=language))
                outputs = cell.get("outputs")
                for output in outputs if isinstance(outputs, list) else []:
                    if not isinstance(output, dict):
                        continue
                    text = _output_text(output)
                    if text.strip():
                        page.add(TextBlock("**Out:**"))
                        page.add(CodeBlock(code=text))
            elif cell_type == "raw":
                page.add(CodeBlock(code=source))

        return Document(
            title=metadata.get("title"),
            pages=[page],
            metadata={"source_type": "notebook", "cell_count": len(cells), "language": language},
        )
