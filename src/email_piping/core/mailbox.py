"""POP3/IMAP mailbox sessions: count, fetch header/body/structure, flag, expunge."""

from __future__ import annotations

import email
import imaplib
import logging
import poplib
from abc import ABC, abstractmethod
from email.message import Message
from email.parser import BytesHeaderParser
from email.utils import collapse_rfc2231_value

from email_piping.core.exceptions import FetchError, MailboxConnectionError
from email_piping.core.models import MailboxCredentials, MimePart

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {
    ("pop3", False): 110,
    ("pop3", True): 995,
    ("imap", False): 143,
    ("imap", True): 993,
}


def _split_body(raw: bytes) -> bytes:
    """Return everything after the header block of a raw RFC 822 message."""
    for separator in (b"\r\n\r\n", b"\n\n"):
        head, sep, body = raw.partition(separator)
        if sep:
            return body
    return b""


def _payload_bytes(part: Message) -> bytes:
    """Still-encoded payload of a leaf part, as the original octets."""
    encoding = str(part.get("Content-Transfer-Encoding", "7bit")).strip().lower()
    if encoding not in ("base64", "quoted-printable"):
        # Identity encodings: decode=True hands back the raw 8-bit octets
        data = part.get_payload(decode=True)
        return data if isinstance(data, bytes) else b""

    payload = part.get_payload(decode=False)
    if not isinstance(payload, str):
        return b""
    try:
        return payload.encode("ascii")
    except UnicodeEncodeError:
        # Stray 8-bit octets in an encoded part come back charset-decoded
        charset = part.get_content_charset() or "utf-8"
        try:
            return payload.encode(charset, errors="replace")
        except LookupError:
            return payload.encode("utf-8", errors="replace")


def _disposition_params(part: Message) -> tuple[tuple[str, str], ...]:
    params = part.get_params(header="content-disposition")
    if not params:
        return ()
    collected: list[tuple[str, str]] = []
    # First entry is the disposition type itself ("attachment", "")
    for name, value in params[1:]:
        collected.append((name, collapse_rfc2231_value(value)))
    return tuple(collected)


class MailboxSession(ABC):
    """One open mailbox connection.

    Sequence numbers are 1-based and only valid for the lifetime of this
    session. Deletion is two-phase: ``mark_deleted`` flags, and only
    ``close(expunge=True)`` removes flagged messages.
    """

    def __init__(self, credentials: MailboxCredentials) -> None:
        self._credentials = credentials
        self._messages: dict[int, Message] = {}
        self._raw: dict[int, bytes] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Protocol-specific primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def _connect(self) -> None: ...

    @abstractmethod
    def _count(self) -> int: ...

    @abstractmethod
    def _retrieve_header(self, seq: int) -> bytes: ...

    @abstractmethod
    def _retrieve(self, seq: int) -> bytes: ...

    @abstractmethod
    def _flag_deleted(self, seq: int) -> None: ...

    @abstractmethod
    def _disconnect(self, expunge: bool) -> None: ...

    def _drop(self) -> None:
        """Tear down a half-open connection after a failed open()."""
        self._closed = True

    # ------------------------------------------------------------------
    # Session API
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Connect and authenticate.

        Raises:
            MailboxConnectionError: Host unreachable, login rejected or handshake failed.
        """
        try:
            self._connect()
        except MailboxConnectionError:
            self._drop()
            raise
        except (OSError, poplib.error_proto, imaplib.IMAP4.error) as e:
            self._drop()
            raise MailboxConnectionError(
                f"Could not open {self._credentials.protocol} mailbox on "
                f"{self._credentials.host}: {e}"
            ) from e
        logger.info(
            "Connected to %s mailbox %s as %s",
            self._credentials.protocol,
            self._credentials.host,
            self._credentials.username,
        )

    def message_count(self) -> int:
        try:
            return self._count()
        except (OSError, poplib.error_proto, imaplib.IMAP4.error) as e:
            raise FetchError(f"Failed to count messages: {e}") from e

    def fetch_header(self, seq: int) -> Message:
        """Fetch and parse the header block of message ``seq``.

        Raises:
            FetchError: Header could not be retrieved or is empty.
        """
        try:
            raw = self._retrieve_header(seq)
        except (OSError, poplib.error_proto, imaplib.IMAP4.error) as e:
            raise FetchError(f"Failed to fetch header of message {seq}: {e}") from e

        header = BytesHeaderParser().parsebytes(raw)
        if not header.keys():
            raise FetchError(f"Message {seq} has no parsable headers")
        return header

    def fetch_message(self, seq: int) -> Message:
        """Retrieve the full message once per session and cache it."""
        if seq not in self._messages:
            try:
                raw = self._retrieve(seq)
            except (OSError, poplib.error_proto, imaplib.IMAP4.error) as e:
                raise FetchError(f"Failed to fetch message {seq}: {e}") from e
            self._raw[seq] = raw
            self._messages[seq] = email.message_from_bytes(raw)
        return self._messages[seq]

    def fetch_body(self, seq: int, part: int = 1) -> bytes:
        """Return the still-encoded bytes of ``part`` (1-based).

        Falls back to the whole message body when part 1 is absent or empty.

        Raises:
            FetchError: The message could not be retrieved or the bytes of
                the part could not be recovered.
        """
        message = self.fetch_message(seq)
        data = b""

        try:
            if message.is_multipart():
                subparts = message.get_payload()
                if 0 < part <= len(subparts):
                    sub = subparts[part - 1]
                    if sub.is_multipart():
                        data = _split_body(sub.as_bytes())
                    else:
                        data = _payload_bytes(sub)
            elif part == 1:
                data = _payload_bytes(message)
        except (UnicodeError, LookupError) as e:
            raise FetchError(f"Failed to read part {part} of message {seq}: {e}") from e

        if not data.strip() and part == 1:
            data = _split_body(self._raw[seq])
        return data

    def fetch_structure(self, seq: int) -> list[MimePart]:
        """Describe the top-level parts. A single-part message has none."""
        message = self.fetch_message(seq)
        if not message.is_multipart():
            return []

        parts: list[MimePart] = []
        for index, sub in enumerate(message.get_payload(), start=1):
            parts.append(
                MimePart(
                    index=index,
                    content_type=sub.get_content_type(),
                    charset=sub.get_content_charset(),
                    encoding=str(sub.get("Content-Transfer-Encoding", "7bit")).strip().lower(),
                    disposition_params=_disposition_params(sub),
                )
            )
        return parts

    def top_level_encoding(self, seq: int) -> tuple[str, str | None]:
        """Transfer encoding and charset declared on the message itself."""
        message = self.fetch_message(seq)
        encoding = str(message.get("Content-Transfer-Encoding", "7bit")).strip().lower()
        return encoding, message.get_content_charset()

    def mark_deleted(self, seq: int) -> None:
        """Flag a message for deletion; nothing is removed until close(expunge=True)."""
        try:
            self._flag_deleted(seq)
        except (OSError, poplib.error_proto, imaplib.IMAP4.error) as e:
            raise FetchError(f"Failed to flag message {seq} for deletion: {e}") from e
        logger.debug("Flagged message %d for deletion", seq)

    def close(self, expunge: bool = True) -> None:
        """Release the connection, expunging flagged messages if asked. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._messages.clear()
        self._raw.clear()
        try:
            self._disconnect(expunge)
        except (OSError, poplib.error_proto, imaplib.IMAP4.error) as e:
            logger.error("Error while closing mailbox %s: %s", self._credentials.host, e)
            return
        logger.info("Closed mailbox %s (expunge=%s)", self._credentials.host, expunge)


class Pop3Session(MailboxSession):
    """POP3 session. DELE flags, QUIT commits, RSET discards flags."""

    def __init__(self, credentials: MailboxCredentials) -> None:
        super().__init__(credentials)
        self._conn: poplib.POP3 | None = None

    @property
    def conn(self) -> poplib.POP3:
        if self._conn is None:
            raise RuntimeError("Mailbox not connected. Call open() first.")
        return self._conn

    def _connect(self) -> None:
        creds = self._credentials
        port = creds.port or DEFAULT_PORTS[("pop3", creds.use_ssl)]
        if creds.use_ssl:
            self._conn = poplib.POP3_SSL(creds.host, port)
        else:
            self._conn = poplib.POP3(creds.host, port)
        self._conn.user(creds.username)
        self._conn.pass_(creds.password)

    def _count(self) -> int:
        count, _size = self.conn.stat()
        return count

    def _retrieve_header(self, seq: int) -> bytes:
        _resp, lines, _octets = self.conn.top(seq, 0)
        return b"\r\n".join(lines) + b"\r\n"

    def _retrieve(self, seq: int) -> bytes:
        _resp, lines, _octets = self.conn.retr(seq)
        return b"\r\n".join(lines) + b"\r\n"

    def _flag_deleted(self, seq: int) -> None:
        self.conn.dele(seq)

    def _disconnect(self, expunge: bool) -> None:
        if self._conn is None:
            return
        try:
            if not expunge:
                self._conn.rset()
            self._conn.quit()
        finally:
            self._conn = None

    def _drop(self) -> None:
        super()._drop()
        if self._conn is not None:
            try:
                self._conn.close()
            except OSError:
                logger.debug("Ignoring socket error while dropping POP3 connection")
            self._conn = None


class ImapSession(MailboxSession):
    """IMAP session. STORE +FLAGS \\Deleted flags, EXPUNGE removes."""

    def __init__(self, credentials: MailboxCredentials) -> None:
        super().__init__(credentials)
        self._conn: imaplib.IMAP4 | None = None
        self._exists = 0

    @property
    def conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise RuntimeError("Mailbox not connected. Call open() first.")
        return self._conn

    def _connect(self) -> None:
        creds = self._credentials
        port = creds.port or DEFAULT_PORTS[("imap", creds.use_ssl)]
        if creds.use_ssl:
            self._conn = imaplib.IMAP4_SSL(creds.host, port)
        else:
            self._conn = imaplib.IMAP4(creds.host, port)
        self._conn.login(creds.username, creds.password)
        status, data = self._conn.select(creds.folder)
        if status != "OK":
            raise MailboxConnectionError(f"Could not select folder {creds.folder}: {data!r}")
        self._exists = int(data[0]) if data and data[0] else 0

    def _count(self) -> int:
        return self._exists

    def _fetch_item(self, seq: int, item: str) -> bytes:
        status, data = self.conn.fetch(str(seq), item)
        if status != "OK" or not data or not isinstance(data[0], tuple):
            raise FetchError(f"FETCH {item} for message {seq} returned {status}")
        return data[0][1]

    def _retrieve_header(self, seq: int) -> bytes:
        return self._fetch_item(seq, "(BODY.PEEK[HEADER])")

    def _retrieve(self, seq: int) -> bytes:
        return self._fetch_item(seq, "(BODY.PEEK[])")

    def _flag_deleted(self, seq: int) -> None:
        status, data = self.conn.store(str(seq), "+FLAGS", "(\\Deleted)")
        if status != "OK":
            raise FetchError(f"STORE for message {seq} returned {status}: {data!r}")

    def _disconnect(self, expunge: bool) -> None:
        if self._conn is None:
            return
        try:
            if expunge:
                self._conn.expunge()
                self._conn.close()
            else:
                # CLOSE would also remove \Deleted messages
                self._conn.unselect()
            self._conn.logout()
        finally:
            self._conn = None

    def _drop(self) -> None:
        super()._drop()
        if self._conn is not None:
            try:
                self._conn.shutdown()
            except OSError:
                logger.debug("Ignoring socket error while dropping IMAP connection")
            self._conn = None


class MailboxClient:
    """Opens a session for the protocol named in the credentials."""

    _sessions: dict[str, type[MailboxSession]] = {
        "pop3": Pop3Session,
        "imap": ImapSession,
    }

    def open(self, credentials: MailboxCredentials) -> MailboxSession:
        """Open a new session.

        Raises:
            MailboxConnectionError: On any connection, login or handshake failure.
        """
        session_cls = self._sessions.get(credentials.protocol)
        if session_cls is None:
            raise MailboxConnectionError(f"Unsupported mailbox protocol: {credentials.protocol}")
        session = session_cls(credentials)
        session.open()
        return session
