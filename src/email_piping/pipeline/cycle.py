"""Pipeline orchestrator: connect, handle each message in turn, then expunge and log the run."""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

import httpx

from email_piping.config.settings import SettingsProvider
from email_piping.core.attachments import AttachmentExtractor
from email_piping.core.exceptions import (
    FetchError,
    MailboxConnectionError,
    ParseError,
    StorageError,
)
from email_piping.core.gateway import TicketGateway
from email_piping.core.mailbox import MailboxClient, MailboxSession
from email_piping.core.models import (
    ApiCredentials,
    CycleSummary,
    IngestionOutcome,
    MessageResult,
)
from email_piping.core.parser import MessageParser
from email_piping.storage.blob_store import LocalBlobStore
from email_piping.storage.run_log import RunLogger, SqliteRunLog

logger = logging.getLogger(__name__)


class IngestionCycle:
    """Runs one complete pass over the mailbox.

    Messages are handled strictly in mailbox order, one at a time, with a
    fixed delay between them. Successfully delivered messages and
    unparsable ones are flagged for deletion; messages the API rejected stay
    in the mailbox for the next cycle. The session is always closed with
    expunge, even if the loop breaks.

    Callers must not run two cycles concurrently (see ``CycleRunner``).
    """

    def __init__(
        self,
        settings_provider: SettingsProvider,
        mailbox_client: MailboxClient,
        extractor: AttachmentExtractor,
        gateway: TicketGateway,
        run_logger: RunLogger,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._settings_provider = settings_provider
        self._mailbox_client = mailbox_client
        self._extractor = extractor
        self._gateway = gateway
        self._run_logger = run_logger
        self._sleep = sleep
        self._clock = clock
        self._closers: list[Callable[[], None]] = []

    @classmethod
    def from_settings(
        cls,
        settings_provider: SettingsProvider,
        http_client: httpx.Client | None = None,
    ) -> IngestionCycle:
        """Build a cycle with the default local storage and HTTP client."""
        settings = settings_provider.get_settings()
        settings.ensure_directories()

        run_log = SqliteRunLog(settings.database_path, settings.max_log_entries)
        run_log.connect()

        blob_store = LocalBlobStore(settings.attachments_dir, settings.attachments_base_url)
        client = http_client or httpx.Client(timeout=settings.http_timeout_seconds)

        cycle = cls(
            settings_provider,
            MailboxClient(),
            AttachmentExtractor(blob_store),
            TicketGateway(client, timeout=settings.http_timeout_seconds),
            run_log,
        )
        cycle._closers.append(run_log.close)
        if http_client is None:
            cycle._closers.append(client.close)
        return cycle

    def close(self) -> None:
        """Release resources created by from_settings()."""
        while self._closers:
            self._closers.pop()()

    def run(self) -> CycleSummary:
        """Run one cycle and return its summary."""
        summary = CycleSummary()
        settings = self._settings_provider.get_settings()

        credentials = self._settings_provider.mailbox_credentials(settings)
        if credentials is None:
            logger.warning("Mailbox credentials missing. Piping skipped.")
            return summary
        api = self._settings_provider.api_credentials(settings)
        parser = MessageParser(settings.body_decoding)

        try:
            session = self._mailbox_client.open(credentials)
        except MailboxConnectionError as e:
            logger.error("Mailbox connection failed: %s", e)
            return summary

        started = self._clock()
        try:
            summary.total_messages = session.message_count()
            logger.info("Connected to mailbox. Total messages: %d", summary.total_messages)

            for seq in range(1, summary.total_messages + 1):
                result = self._process_message(session, seq, parser, api, started)
                summary.add(result)

                if seq < summary.total_messages and settings.inter_message_delay_seconds > 0:
                    self._sleep(settings.inter_message_delay_seconds)
        except FetchError as e:
            logger.error("Mailbox scan aborted: %s", e)
        finally:
            session.close(expunge=True)

        logger.info(
            "Cycle complete: total=%d created=%d updated=%d skipped=%d failed=%d",
            summary.total_messages, summary.created_count, summary.updated_count,
            summary.skipped_count, summary.failed_count,
        )

        if summary.processed_count > 0:
            try:
                self._run_logger.record(
                    summary.created_count,
                    summary.updated_count,
                    summary.processed_count,
                    self._clock(),
                )
            except StorageError as e:
                logger.error("Could not record run: %s", e)

        return summary

    def _process_message(
        self,
        session: MailboxSession,
        seq: int,
        parser: MessageParser,
        api: ApiCredentials,
        started: datetime,
    ) -> MessageResult:
        """Handle one message. Never raises; every failure becomes a result."""
        stage = "header"
        try:
            try:
                header = session.fetch_header(seq)
            except FetchError as e:
                return self._discard(session, seq, stage, e)

            stage = "body"
            try:
                structure = session.fetch_structure(seq)
                body = session.fetch_body(seq, 1)
                encoding, charset = session.top_level_encoding(seq)
            except FetchError as e:
                # Possibly transient; leave it for the next cycle
                logger.warning("Could not fetch body of message %d: %s", seq, e)
                return MessageResult(seq, IngestionOutcome.SKIPPED, stage, str(e))

            stage = "parse"
            try:
                parsed = parser.parse(header, body, structure, encoding=encoding, charset=charset)
            except ParseError as e:
                return self._discard(session, seq, stage, e)

            stage = "attachments"
            attachments = self._extractor.extract(
                structure,
                lambda index: session.fetch_body(seq, index),
                started.strftime("%Y/%m"),
            )
            parsed = dataclasses.replace(parsed, attachments=tuple(attachments))

            stage = "submit"
            outcome = self._gateway.submit(parsed, api)

            if outcome is IngestionOutcome.FAILED:
                logger.warning("Failed to process message %d. Keeping in mailbox.", seq)
                return MessageResult(seq, outcome, stage, "ticketing API rejected the message")

            stage = "delete"
            session.mark_deleted(seq)
            logger.info("Successfully processed message %d with status: %s", seq, outcome.value)
            return MessageResult(seq, outcome)

        except Exception as e:
            logger.exception("Error processing message %d at %s", seq, stage)
            return MessageResult(seq, IngestionOutcome.SKIPPED, stage, str(e))

    @staticmethod
    def _discard(
        session: MailboxSession, seq: int, stage: str, error: Exception
    ) -> MessageResult:
        """Flag an unusable message for deletion so it is not reprocessed forever."""
        logger.warning("Skipping message %d at %s: %s", seq, stage, error)
        session.mark_deleted(seq)
        return MessageResult(seq, IngestionOutcome.SKIPPED, stage, str(error))
