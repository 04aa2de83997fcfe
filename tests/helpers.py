"""Raw message samples and an in-memory mailbox session for tests."""

from __future__ import annotations

from email_piping.core.mailbox import MailboxSession
from email_piping.core.models import MailboxCredentials

SEED = "test-auth-key"
SALT = "test-secure-auth-key"

SIMPLE_TEXT_EML = (
    b"From: Jane Doe <jane@example.com>\r\n"
    b"To: support@example.org\r\n"
    b"Subject: Help needed\r\n"
    b"Date: Mon, 15 Jan 2024 10:30:00 -0500\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"Content-Transfer-Encoding: quoted-printable\r\n"
    b"\r\n"
    b"My printer is on fire. Caf=C3=A9 is closed.\r\n"
)

REPLY_EML = (
    b"From: bob@example.com\r\n"
    b"Subject: Re: [#XY9] still broken\r\n"
    b"Content-Type: text/plain\r\n"
    b"\r\n"
    b"Still broken after the update.\r\n"
)

NO_SUBJECT_EML = (
    b"From: nobody@example.com\r\n"
    b"Content-Type: text/plain\r\n"
    b"\r\n"
    b"No subject here.\r\n"
)

MULTIPART_EML = (
    b"From: =?utf-8?q?J=C3=BCrgen?= <jurgen@example.com>\r\n"
    b"Subject: =?utf-8?b?UmVjZWlwdCBmw7xyIE1haQ==?=\r\n"
    b"MIME-Version: 1.0\r\n"
    b'Content-Type: multipart/mixed; boundary="XYZ"\r\n'
    b"\r\n"
    b"--XYZ\r\n"
    b"Content-Type: text/html; charset=utf-8\r\n"
    b"Content-Transfer-Encoding: base64\r\n"
    b"\r\n"
    b"PHA+SGVsbG8gPGI+d29ybGQ8L2I+PC9wPg==\r\n"
    b"--XYZ\r\n"
    b"Content-Type: application/pdf\r\n"
    b"Content-Transfer-Encoding: base64\r\n"
    b'Content-Disposition: attachment; filename="receipt.pdf"\r\n'
    b"\r\n"
    b"JVBERi0xLjQKJcOkw7w=\r\n"
    b"--XYZ\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"Content-Transfer-Encoding: quoted-printable\r\n"
    b'Content-Disposition: attachment; FILENAME="=?utf-8?q?notes_=C3=A4.txt?="\r\n'
    b"\r\n"
    b"caf=C3=A9 notes\r\n"
    b"--XYZ--\r\n"
)

EIGHT_BIT_EML = (
    b"From: Jane Doe <jane@example.com>\r\n"
    b"Subject: Closed today\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"Content-Transfer-Encoding: 8bit\r\n"
    b"\r\n"
    + "Grüße, the café is closed.\r\n".encode("utf-8")
)

EIGHT_BIT_MULTIPART_EML = (
    b"From: Jane Doe <jane@example.com>\r\n"
    b"Subject: Menu attached\r\n"
    b"MIME-Version: 1.0\r\n"
    b'Content-Type: multipart/mixed; boundary="B8"\r\n'
    b"\r\n"
    b"--B8\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"Content-Transfer-Encoding: 8bit\r\n"
    b"\r\n"
    + "Grüße, see the menü.\r\n".encode("utf-8")
    + b"--B8\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"Content-Transfer-Encoding: 8bit\r\n"
    b'Content-Disposition: attachment; filename="menu.txt"\r\n'
    b"\r\n"
    + "Crème brûlée\r\n".encode("utf-8")
    + b"--B8--\r\n"
)


class InMemorySession(MailboxSession):
    """MailboxSession over a list of raw messages, recording flags and closes."""

    def __init__(self, messages: list[bytes], credentials: MailboxCredentials | None = None) -> None:
        super().__init__(
            credentials or MailboxCredentials(host="mail.test", username="u", password="p")
        )
        self.raw_messages = list(messages)
        self.deleted: set[int] = set()
        self.expunged: list[int] = []
        self.close_calls: list[bool] = []
        self.fail_header: set[int] = set()
        self.fail_retrieve: set[int] = set()

    def _connect(self) -> None:
        pass

    def _count(self) -> int:
        return len(self.raw_messages)

    def _retrieve_header(self, seq: int) -> bytes:
        if seq in self.fail_header:
            raise OSError("connection reset")
        raw = self.raw_messages[seq - 1]
        head, _, _ = raw.partition(b"\r\n\r\n")
        return head + b"\r\n\r\n"

    def _retrieve(self, seq: int) -> bytes:
        if seq in self.fail_retrieve:
            raise OSError("connection reset")
        return self.raw_messages[seq - 1]

    def _flag_deleted(self, seq: int) -> None:
        self.deleted.add(seq)

    def _disconnect(self, expunge: bool) -> None:
        self.close_calls.append(expunge)
        if expunge:
            self.expunged = sorted(self.deleted)


