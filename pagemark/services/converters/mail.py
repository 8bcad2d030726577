"""Email (.eml) converter using the standard library email parser."""

from email import policy
from email.message import EmailMessage
from email.parser import BytesParser

from bs4 import BeautifulSoup

from pagemark.exceptions import EncodingError
from pagemark.models import ConversionOptions, Document, HeadingBlock, ListBlock, Page, TextBlock
from pagemark.services.converters.base import BaseConverter

HEADER_FIELDS = ("From", "To", "Cc", "Subject", "Date")


class EmailConverter(BaseConverter):
    """Headers, body (plain text preferred over HTML), and an attachment listing."""

    SUPPORTED_EXTENSIONS = frozenset({"eml"})

    async def convert_bytes(self, data: bytes, options: ConversionOptions) -> Document:
        if not data.strip():
            return Document(metadata={"source_type": "email"})

        message: EmailMessage = BytesParser(policy=policy.default).parsebytes(data)

        page = Page(number=1)
        for field_name in HEADER_FIELDS:
            value = message.get(field_name)
            if value:
                page.add(TextBlock(f"**{field_name}:** {value}"))

        body = self._body_text(message)
        if body:
            page.add(TextBlock(body))

        attachments = [
            f"**{part.get_filename() or 'unnamed'}** "
            f"({part.get_content_type()}, {len(part.get_payload(decode=True) or b'')} bytes)"
            for part in message.iter_attachments()
        ]
        if attachments:
            page.add(HeadingBlock(level=2, text="Attachments"))
            page.add(ListBlock(items=attachments))

        return Document(
            title=str(message.get("Subject", "")) or None,
            pages=[page],
            metadata={"source_type": "email", "attachment_count": len(attachments)},
        )

    def _body_text(self, message: EmailMessage) -> str | None:
        part = message.get_body(preferencelist=("plain", "html"))
        if part is None:
            return None
        try:
            content = part.get_content()
        except (LookupError, UnicodeError) as e:
            raise EncodingError(f"Email body could not be decoded: {e}") from e
        if part.get_content_subtype() == "html":
            return BeautifulSoup(content, "lxml").get_text("\n", strip=True)
        return content.strip()
