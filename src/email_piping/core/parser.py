"""Message parser: subject/sender decoding, ticket reference detection, body decoding."""

from __future__ import annotations

import base64
import binascii
import logging
import quopri
import re
from email.header import decode_header, make_header
from email.message import Message
from email.utils import getaddresses

from email_piping.core.exceptions import ParseError
from email_piping.core.models import MimePart, ParsedMessage

logger = logging.getLogger(__name__)

# Helpdesk subject tag: "[#AB12]" or "[AB12]"
TICKET_REFERENCE_PATTERN = re.compile(r"\[#?(\w+?)\]", re.ASCII)


def decode_mime_header(value: str | None) -> str:
    """Decode RFC 2047 encoded-words into a readable string."""
    if not value:
        return ""
    try:
        return str(make_header(decode_header(value)))
    except (LookupError, UnicodeDecodeError, binascii.Error) as e:
        logger.warning("Could not decode header %r: %s", value, e)
        return str(value)


def detect_ticket_reference(subject: str) -> str | None:
    """Return the inner token of the first bracketed tag in ``subject``, if any."""
    match = TICKET_REFERENCE_PATTERN.search(subject)
    if match is None:
        return None
    return match.group(1)


def decode_transfer_encoding(data: bytes, encoding: str) -> bytes:
    """Undo a Content-Transfer-Encoding. Unknown encodings pass through."""
    encoding = encoding.lower()
    if encoding == "base64":
        return base64.b64decode(data)
    if encoding == "quoted-printable":
        return quopri.decodestring(data)
    return data


class MessageParser:
    """Turns one message's header block and body bytes into a ParsedMessage.

    ``body_decoding="declared"`` decodes the body by the transfer encoding
    declared for it. ``"quoted-printable"`` applies quoted-printable decoding
    regardless, which is what older deployments did.
    """

    def __init__(self, body_decoding: str = "declared") -> None:
        self._body_decoding = body_decoding

    def parse(
        self,
        header: Message,
        body: bytes,
        structure: list[MimePart] | None = None,
        *,
        encoding: str = "7bit",
        charset: str | None = None,
    ) -> ParsedMessage:
        """Parse headers and body into a ParsedMessage without attachments.

        Args:
            header: Parsed header block of the message.
            body: Still-encoded bytes of part 1, or the whole body.
            structure: Top-level MIME parts; part 1's encoding/charset win when present.
            encoding: Transfer encoding of a single-part message.
            charset: Charset of a single-part message.

        Raises:
            ParseError: Subject or sender address is missing.
        """
        subject = decode_mime_header(header.get("Subject")).strip()
        if not subject:
            raise ParseError("missing subject")

        sender_email, sender_name = self._extract_sender(header)
        if not sender_email:
            raise ParseError("missing sender address")

        if structure:
            first = structure[0]
            encoding, charset = first.encoding, first.charset

        ticket_reference = detect_ticket_reference(subject)
        if ticket_reference:
            logger.debug("Reply detected via subject: %s", ticket_reference)

        return ParsedMessage(
            subject=subject,
            body=self._decode_body(body, encoding, charset),
            sender_email=sender_email,
            sender_name=sender_name,
            ticket_reference=ticket_reference,
        )

    @staticmethod
    def _extract_sender(header: Message) -> tuple[str, str]:
        """First From address as (mailbox@host, display name)."""
        addresses = getaddresses(header.get_all("From", []))
        for name, address in addresses:
            if address and "@" in address:
                return address, decode_mime_header(name).strip()
        return "", ""

    def _decode_body(self, body: bytes, encoding: str, charset: str | None) -> str:
        if self._body_decoding == "quoted-printable":
            decoded = quopri.decodestring(body)
        else:
            try:
                decoded = decode_transfer_encoding(body, encoding)
            except (binascii.Error, ValueError) as e:
                logger.warning("Body declared %s but could not be decoded: %s", encoding, e)
                decoded = body

        try:
            return decoded.decode(charset or "utf-8", errors="replace")
        except LookupError:
            logger.warning("Unknown body charset %r, falling back to utf-8", charset)
            return decoded.decode("utf-8", errors="replace")
