"""CSV and TSV converter: the first row is the header."""

import csv
import io

from pagemark.exceptions import ParseError
from pagemark.models import ConversionOptions, Document, Page, TableBlock
from pagemark.services.converters.base import BaseConverter, decode_text


class CsvConverter(BaseConverter):
    SUPPORTED_EXTENSIONS = frozenset({"csv", "tsv"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data.strip():
            return Document(metadata={"source_type": "csv"})

        text = decode_text(data, options.source_name)
        delimiter = "\t" if options.file_extension == "tsv" else ","
        try:
            reader = csv.reader(io.StringIO(text), delimiter=delimiter, strict=True)
            rows = [row for row in reader if row]
        except csv.Error as e:
            raise ParseError(f"CSV parse error: {e}") from e

        page = Page(number=1)
        if rows:
            page.add(TableBlock(headers=rows[0], rows=rows[1:]))

        return Document(
            pages=[page],
            metadata={"source_type": "csv", "row_count": max(len(rows) - 1, 0)},
        )
