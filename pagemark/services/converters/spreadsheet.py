"""Spreadsheet (Excel) conversion using openpyxl."""

import io
import logging
import zipfile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from pagemark.config import settings
from pagemark.exceptions import ParseError
from pagemark.models import ConversionOptions, Document, HeadingBlock, Page, TableBlock, TextBlock
from pagemark.services.converters.base import BaseConverter

logger = logging.getLogger(__name__)


def _cell_value_to_str(value) -> str:
    """Convert a cell value to string, handling various types."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # Format numbers nicely (no trailing .0 for integers)
        return str(int(value))
    return str(value)


class SpreadsheetConverter(BaseConverter):
    """
    Convert Excel workbooks, one page per sheet.

    Only computed cell values are read; formulas are not evaluated or kept.
    """

    SUPPORTED_EXTENSIONS = frozenset({"xlsx", "xlsm"})

    def __init__(self, max_rows: int | None = None, max_cols: int | None = None):
        self.max_rows = max_rows or settings.spreadsheet_max_rows
        self.max_cols = max_cols or settings.spreadsheet_max_cols

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        try:
            workbook = load_workbook(
                filename=io.BytesIO(data),
                read_only=True,
                data_only=True,  # Get calculated values, not formulas
            )
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
            raise ParseError(f"Failed to load spreadsheet: {e}") from e

        document = Document(
            title=workbook.properties.title or None,
            metadata={"source_type": "spreadsheet", "sheet_count": len(workbook.sheetnames)},
        )

        try:
            for sheet_name in workbook.sheetnames:
                page = Page(number=document.next_page_number, label=sheet_name)
                page.add(HeadingBlock(level=2, text=sheet_name))
                try:
                    page.blocks.extend(self._extract_sheet(workbook[sheet_name]))
                except (ValueError, TypeError, KeyError) as e:
                    logger.warning(f"Failed to extract sheet '{sheet_name}': {e}")
                    page.add(TextBlock("*Sheet could not be read*"))
                document.add_page(page)
        finally:
            workbook.close()

        return document

    def _extract_sheet(self, sheet) -> list:
        """
        Extract a worksheet as a table, treating the first non-empty row as the header.

        Args:
            sheet: openpyxl worksheet object

        Returns:
            Content blocks for the sheet body
        """
        rows_data: list[list[str]] = []
        truncated = False
        for row_index, row in enumerate(
            sheet.iter_rows(max_col=self.max_cols, values_only=True), start=1
        ):
            if row_index > self.max_rows:
                truncated = True
                break
            cells = [_cell_value_to_str(value) for value in row]
            # Only include rows that have at least some content
            if any(cell.strip() for cell in cells):
                rows_data.append(cells)

        if not rows_data:
            return [TextBlock("*Empty sheet*")]

        # Normalize column count (pad shorter rows)
        width = max(len(row) for row in rows_data)
        for row in rows_data:
            row.extend([""] * (width - len(row)))

        blocks: list = [TableBlock(headers=rows_data[0], rows=rows_data[1:])]
        if truncated:
            blocks.append(TextBlock(f"*Note: Showing first {self.max_rows} rows (truncated)*"))
        return blocks


class SpreadsheetTemplateConverter(SpreadsheetConverter):
    """Excel templates resolve to their own converter rather than the workbook one."""

    SUPPORTED_EXTENSIONS = frozenset({"xltx", "xltm"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        document = await super().convert_bytes(data, options)
        document.metadata["template"] = True
        return document
