"""Email Piping - Pipe mailbox messages into a ticketing system's REST API."""

from email_piping.core.models import (
    AttachmentDescriptor,
    CycleSummary,
    IngestionOutcome,
    MessageResult,
    ParsedMessage,
)
from email_piping.pipeline.cycle import IngestionCycle
from email_piping.pipeline.scheduler import CycleRunner, IntervalScheduler

__all__ = [
    "AttachmentDescriptor",
    "CycleRunner",
    "CycleSummary",
    "IngestionCycle",
    "IngestionOutcome",
    "IntervalScheduler",
    "MessageResult",
    "ParsedMessage",
]
