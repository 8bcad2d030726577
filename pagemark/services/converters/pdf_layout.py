"""Layout analysis over positioned PDF text.

Pure functions: spans in, content blocks out. The PDF converter feeds them
spans read with PyMuPDF; tests feed them by hand.
"""

import re
import statistics
from dataclasses import dataclass, field

from pagemark.models import ContentBlock, HeadingBlock, ListBlock, TableBlock, TextBlock

# A line at least this much larger than the body text is a heading
HEADING_SIZE_RATIO = 1.2
# Horizontal gap, in multiples of the font size, that separates two table cells
CELL_GAP_EM = 1.5
# Smaller gaps than this join adjacent spans without a space
WORD_GAP_EM = 0.15
# Longest line still treated as a heading
MAX_HEADING_CHARS = 200

BULLET_PATTERN = re.compile(r"^[•◦▪‣●○■\-\*–·]\s+(.+)$")
ORDERED_PATTERN = re.compile(r"^\d{1,3}[.)]\s+(.+)$")


@dataclass(frozen=True)
class TextSpan:
    """A run of text with its bounding box and font size."""

    text: str
    x0: float
    y0: float
    x1: float
    y1: float
    size: float


@dataclass(frozen=True)
class TextLine:
    """Spans sharing a baseline, left to right, split into cells at wide gaps."""

    cells: tuple[str, ...]
    size: float
    y0: float = 0.0

    @property
    def text(self) -> str:
        return " ".join(self.cells)


@dataclass
class PageLayout:
    """Result of structuring one page."""

    blocks: list[ContentBlock] = field(default_factory=list)
    text: str = ""
    # Characters in lines not attributed to a heading, list item or table cell
    unstructured_char_count: int = 0


def group_spans(spans: list[TextSpan]) -> list[TextLine]:
    """Group spans into lines by vertical position, top to bottom."""
    rows: list[list[TextSpan]] = []
    for span in sorted((s for s in spans if s.text.strip()), key=lambda s: (s.y0, s.x0)):
        middle = (span.y0 + span.y1) / 2
        if rows:
            last = rows[-1]
            last_middle = (last[0].y0 + last[0].y1) / 2
            if abs(middle - last_middle) <= max(span.size, last[0].size) / 2:
                last.append(span)
                continue
        rows.append([span])

    lines = []
    for row in rows:
        row.sort(key=lambda s: s.x0)
        size = max(s.size for s in row)
        cells: list[str] = []
        previous: TextSpan | None = None
        for span in row:
            text = span.text.strip()
            gap = span.x0 - previous.x1 if previous is not None else None
            if gap is None or gap > CELL_GAP_EM * size:
                cells.append(text)
            elif (
                gap > WORD_GAP_EM * size
                or span.text[:1].isspace()
                or previous.text[-1:].isspace()
            ):
                cells[-1] = f"{cells[-1]} {text}"
            else:
                cells[-1] += text
            previous = span
        lines.append(TextLine(cells=tuple(cells), size=size, y0=row[0].y0))
    return lines


def _heading_level(size: float, body_size: float) -> int:
    ratio = size / body_size
    if ratio >= 2.0:
        return 1
    if ratio >= 1.5:
        return 2
    return 3


def _list_item(text: str) -> tuple[bool, str] | None:
    """(ordered, item text) for a list marker line, else None."""
    match = ORDERED_PATTERN.match(text)
    if match:
        return True, match.group(1)
    match = BULLET_PATTERN.match(text)
    if match:
        return False, match.group(1)
    return None


def structure_lines(lines: list[TextLine]) -> PageLayout:
    """
    Recognise headings, lists and tables in a page's lines.

    Tables are runs of at least two consecutive lines split into the same
    number (two or more) of cells; the first line is the header. Headings
    are short lines whose font is at least HEADING_SIZE_RATIO times the
    median line size. Everything else is paragraph text and counts toward
    ``unstructured_char_count``.
    """
    layout = PageLayout(text="\n".join(line.text for line in lines))
    if not lines:
        return layout

    body_size = statistics.median(line.size for line in lines) or 1.0
    paragraph: list[str] = []
    list_items: list[str] = []
    list_ordered = False

    def flush_paragraph() -> None:
        if paragraph:
            layout.blocks.append(TextBlock(" ".join(paragraph)))
            paragraph.clear()

    def flush_list() -> None:
        nonlocal list_items
        if list_items:
            layout.blocks.append(ListBlock(items=list_items, ordered=list_ordered))
            list_items = []

    index = 0
    while index < len(lines):
        line = lines[index]
        width = len(line.cells)

        if width >= 2:
            end = index + 1
            while end < len(lines) and len(lines[end].cells) == width:
                end += 1
            if end - index >= 2:
                flush_paragraph()
                flush_list()
                layout.blocks.append(
                    TableBlock(
                        headers=list(line.cells),
                        rows=[list(row.cells) for row in lines[index + 1 : end]],
                    )
                )
                index = end
                continue

        text = line.text.strip()
        item = _list_item(text)

        if line.size >= HEADING_SIZE_RATIO * body_size and len(text) <= MAX_HEADING_CHARS:
            flush_paragraph()
            flush_list()
            level = _heading_level(line.size, body_size)
            layout.blocks.append(HeadingBlock(level=level, text=text))
        elif item is not None:
            flush_paragraph()
            ordered, item_text = item
            if list_items and ordered != list_ordered:
                flush_list()
            list_ordered = ordered
            list_items.append(item_text)
        else:
            flush_list()
            paragraph.append(text)
            layout.unstructured_char_count += len(text)

        index += 1

    flush_paragraph()
    flush_list()
    return layout
