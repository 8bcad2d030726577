"""RSS and Atom feed converter."""

from bs4 import BeautifulSoup, Tag

from pagemark.exceptions import ParseError
from pagemark.models import ConversionOptions, Document, HeadingBlock, Page, TextBlock
from pagemark.services.converters.base import BaseConverter


def _text(parent: Tag, name: str) -> str | None:
    element = parent.find(name, recursive=False)
    if element is None:
        return None
    text = element.get_text(strip=True)
    return text or None


def _html_to_text(markup: str) -> str:
    """Feed summaries are often escaped HTML."""
    return BeautifulSoup(markup, "lxml").get_text(" ", strip=True)


class FeedConverter(BaseConverter):
    SUPPORTED_EXTENSIONS = frozenset({"rss", "atom"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data.strip():
            return Document(metadata={"source_type": "feed"})

        soup = BeautifulSoup(data, "xml")
        channel = soup.find("channel")
        feed = soup.find("feed")

        if channel is not None:
            title, page, count = self._convert_rss(channel)
            feed_type = "rss"
        elif feed is not None:
            title, page, count = self._convert_atom(feed)
            feed_type = "atom"
        else:
            raise ParseError("Failed to parse feed: no <channel> or <feed> element")

        return Document(
            title=title,
            pages=[page],
            metadata={"source_type": "feed", "feed_type": feed_type, "entry_count": count},
        )

    def _convert_rss(self, channel: Tag) -> tuple[str | None, Page, int]:
        page = Page(number=1)
        title = _text(channel, "title")
        if title:
            page.add(HeadingBlock(level=1, text=title))
        description = _text(channel, "description")
        if description:
            page.add(TextBlock(_html_to_text(description)))

        items = channel.find_all("item")
        for item in items:
            item_title = _text(item, "title")
            if item_title:
                page.add(HeadingBlock(level=2, text=item_title))
            published = _text(item, "pubDate")
            if published:
                page.add(TextBlock(f"Published on: {published}"))
            summary = _text(item, "description")
            if summary:
                page.add(TextBlock(_html_to_text(summary)))
            link = _text(item, "link")
            if link:
                page.add(TextBlock(f"<{link}>"))

        return title, page, len(items)

    def _convert_atom(self, feed: Tag) -> tuple[str | None, Page, int]:
        page = Page(number=1)
        title = _text(feed, "title")
        if title:
            page.add(HeadingBlock(level=1, text=title))
        subtitle = _text(feed, "subtitle")
        if subtitle:
            page.add(TextBlock(_html_to_text(subtitle)))

        entries = feed.find_all("entry")
        for entry in entries:
            entry_title = _text(entry, "title")
            if entry_title:
                page.add(HeadingBlock(level=2, text=entry_title))
            updated = _text(entry, "updated")
            if updated:
                page.add(TextBlock(f"Updated on: {updated}"))
            body = _text(entry, "content") or _text(entry, "summary")
            if body:
                page.add(TextBlock(_html_to_text(body)))

        return title, page, len(entries)
