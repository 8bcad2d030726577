"""Stitch tables that continue across page boundaries into one table."""

import logging
from dataclasses import replace

from pagemark.models import Document, Page, TableBlock

logger = logging.getLogger(__name__)


def _normalize(cells: list[str]) -> list[str]:
    return [cell.strip() for cell in cells]


def can_merge(anchor: TableBlock, fragment: TableBlock) -> bool:
    """A fragment continues the anchor when column counts match and any headers agree."""
    if anchor.column_count != fragment.column_count:
        return False
    if anchor.headers and fragment.headers:
        return _normalize(anchor.headers) == _normalize(fragment.headers)
    return True


def merge_tables(anchor: TableBlock, fragment: TableBlock) -> TableBlock:
    """
    Append a fragment's rows to the anchor under the anchor's header.

    A fragment header identical to the anchor's is dropped. A headerless
    anchor keeps the fragment header as data. A first data row repeating the
    anchor header is dropped as well.
    """
    rows = [list(row) for row in fragment.rows]
    if fragment.headers and not anchor.headers:
        rows.insert(0, list(fragment.headers))
    if anchor.headers and rows and _normalize(rows[0]) == _normalize(anchor.headers):
        rows = rows[1:]
    return TableBlock(headers=list(anchor.headers), rows=[list(r) for r in anchor.rows] + rows)


def merge_multipage_tables(document: Document) -> Document:
    """
    Return a copy of ``document`` with multi-page tables merged.

    Single pass, left to right. The last block of a page anchors a run when
    it is a table; every matching table at the head of the following page
    joins it. A page emptied by the merge is dropped (remaining pages keep
    their numbers) and the run continues onto the page after it. Any other
    content stops the run.
    """
    pages = [replace(page, blocks=list(page.blocks)) for page in document.pages]
    dropped: set[int] = set()
    merged_count = 0

    index = 0
    while index < len(pages):
        page = pages[index]
        if not page.blocks or not isinstance(page.blocks[-1], TableBlock):
            index += 1
            continue

        anchor = page.blocks[-1]
        follower = index + 1
        while follower < len(pages):
            continuation: Page = pages[follower]
            merged_here = False
            while (
                continuation.blocks
                and isinstance(continuation.blocks[0], TableBlock)
                and can_merge(anchor, continuation.blocks[0])
            ):
                anchor = merge_tables(anchor, continuation.blocks.pop(0))
                merged_here = True
                merged_count += 1

            if not merged_here or continuation.blocks or continuation.rendered_image is not None:
                break
            dropped.add(follower)
            follower += 1

        page.blocks[-1] = anchor
        index = max(follower, index + 1)

    if merged_count:
        logger.debug(f"Merged {merged_count} table fragments, dropped {len(dropped)} pages")

    return replace(
        document,
        pages=[page for position, page in enumerate(pages) if position not in dropped],
        metadata=dict(document.metadata),
    )
