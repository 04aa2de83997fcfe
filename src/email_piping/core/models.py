"""Frozen dataclasses for the email piping domain model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class MailboxCredentials:
    """Connection details for one cycle. The password is plaintext, so never log it."""

    host: str
    username: str
    password: str = field(repr=False)
    protocol: str = "pop3"
    port: int | None = None
    use_ssl: bool = False
    folder: str = "INBOX"


@dataclass(frozen=True)
class ApiCredentials:
    """Ticketing API endpoint and decrypted Basic-auth credentials."""

    base_url: str
    username: str
    password: str = field(repr=False)
    mailbox_id: int = 1


@dataclass(frozen=True)
class MimePart:
    """One top-level MIME part of a message (IMAP-style 1-based index)."""

    index: int
    content_type: str = "text/plain"
    charset: str | None = None
    encoding: str = "7bit"
    disposition_params: tuple[tuple[str, str], ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AttachmentDescriptor:
    """An attachment already persisted to the blob store."""

    file_name: str
    byte_size: int
    storage_url: str

    def to_payload(self) -> dict[str, object]:
        return {
            "file_name": self.file_name,
            "file_size": self.byte_size,
            "file_url": self.storage_url,
        }


@dataclass(frozen=True)
class ParsedMessage:
    """Normalized content of one mailbox message."""

    subject: str
    body: str
    sender_email: str
    sender_name: str = ""
    ticket_reference: str | None = None
    attachments: tuple[AttachmentDescriptor, ...] = field(default_factory=tuple)

    @property
    def is_reply(self) -> bool:
        return self.ticket_reference is not None


class IngestionOutcome(str, Enum):
    """What happened to a single message during a cycle."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class MessageResult:
    """Per-message result: an outcome plus the failing stage and error, if any."""

    seq: int
    outcome: IngestionOutcome
    stage: str = ""
    error: str | None = None

    @property
    def delivered(self) -> bool:
        return self.outcome in (IngestionOutcome.CREATED, IngestionOutcome.UPDATED)


@dataclass
class CycleSummary:
    """Mutable per-cycle counters, handed to the run logger at the end."""

    total_messages: int = 0
    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    results: list[MessageResult] = field(default_factory=list)

    @property
    def processed_count(self) -> int:
        return self.created_count + self.updated_count

    def add(self, result: MessageResult) -> None:
        """Fold one message result into the counters."""
        self.results.append(result)
        if result.outcome is IngestionOutcome.CREATED:
            self.created_count += 1
        elif result.outcome is IngestionOutcome.UPDATED:
            self.updated_count += 1
        elif result.outcome is IngestionOutcome.SKIPPED:
            self.skipped_count += 1
        else:
            self.failed_count += 1


@dataclass(frozen=True)
class RunLogEntry:
    """One persisted run-log row."""

    entry_id: int
    timestamp: datetime
    created_count: int
    updated_count: int
    processed_count: int
