"""Custom exceptions for the email piping pipeline."""


class PipingError(Exception):
    """Base exception for all email piping errors."""


class MailboxConnectionError(PipingError):
    """Mailbox unreachable, login rejected, or protocol handshake failed."""


class FetchError(PipingError):
    """Failed to fetch a message (or part of it) from an open mailbox session."""


class ParseError(PipingError):
    """Message headers are missing or unusable."""


class StorageError(PipingError):
    """Failed to persist an attachment to the blob store."""


class ApiError(PipingError):
    """Ticketing API call failed at the transport level or returned non-2xx."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
