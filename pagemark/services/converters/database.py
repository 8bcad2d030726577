"""SQLite database converter: one page per table with its schema and sample rows."""

import asyncio
import os
import sqlite3
import tempfile
from contextlib import closing

from pagemark.exceptions import ParseError
from pagemark.models import ConversionOptions, Document, HeadingBlock, Page, TableBlock
from pagemark.services.converters.base import BaseConverter

# Rows shown per table
MAX_SAMPLE_ROWS = 100


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    return str(value)


def _quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class SqliteConverter(BaseConverter):
    SUPPORTED_EXTENSIONS = frozenset({"sqlite", "sqlite3", "db"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data:
            return Document(metadata={"source_type": "sqlite", "table_count": 0})
        return await asyncio.to_thread(self._convert, data)

    def _convert(self, data: bytes) -> Document:
        # sqlite3 only opens files, so stage the bytes on disk
        fd, path = tempfile.mkstemp(suffix=".sqlite")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            try:
                with closing(sqlite3.connect(f"file:{path}?mode=ro", uri=True)) as connection:
                    return self._read_tables(connection)
            except sqlite3.DatabaseError as e:
                raise ParseError(f"SQLite parse error: {e}") from e
        finally:
            os.unlink(path)

    def _read_tables(self, connection: sqlite3.Connection) -> Document:
        tables = [
            row[0]
            for row in connection.execute(
                "SELECT name FROM sqlite_master "
                "WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
            )
        ]

        document = Document(metadata={"source_type": "sqlite", "table_count": len(tables)})
        for table in tables:
            page = document.new_page(label=table)
            page.add(HeadingBlock(level=2, text=f"Table: {table}"))

            columns = connection.execute(
                f"PRAGMA table_info({_quote_identifier(table)})"
            ).fetchall()
            page.add(
                TableBlock(
                    headers=["Column", "Type", "Nullable", "Primary Key"],
                    rows=[
                        [name, col_type, "No" if notnull else "Yes", "Yes" if pk else "No"]
                        for _, name, col_type, notnull, _, pk in columns
                    ],
                )
            )

            cursor = connection.execute(
                f"SELECT * FROM {_quote_identifier(table)} LIMIT {MAX_SAMPLE_ROWS}"
            )
            rows = [[_cell(value) for value in row] for row in cursor.fetchall()]
            if rows:
                page.add(HeadingBlock(level=3, text="Data"))
                page.add(
                    TableBlock(headers=[column[0] for column in cursor.description], rows=rows)
                )

        return document
