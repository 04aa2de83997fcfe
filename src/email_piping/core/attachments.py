"""Attachment extraction from top-level MIME parts into the blob store."""

from __future__ import annotations

import binascii
import logging
import re
import unicodedata
from collections.abc import Callable

from email_piping.core.exceptions import FetchError, StorageError
from email_piping.core.models import AttachmentDescriptor, MimePart
from email_piping.core.parser import decode_mime_header, decode_transfer_encoding
from email_piping.storage.blob_store import BlobStore

logger = logging.getLogger(__name__)


def attachment_filename(part: MimePart) -> str:
    """Decoded ``filename`` disposition parameter, matched case-insensitively."""
    for name, value in part.disposition_params:
        if name.lower() == "filename":
            return decode_mime_header(value).strip()
    return ""


def sanitize_filename(name: str, max_length: int = 200) -> str:
    """Strip path components and characters unsafe in stored file names."""
    name = name.replace("\\", "/").rsplit("/", 1)[-1]
    name = unicodedata.normalize("NFKC", name)
    name = re.sub(r"[^\w.\- ]", "", name).strip(" .")
    name = re.sub(r"\s+", "-", name)
    return name[:max_length] if name else "attachment"


class AttachmentExtractor:
    """Decode filename-bearing parts and persist them through a BlobStore.

    Only top-level parts are considered. Failures on a single attachment
    are logged and that attachment is dropped; the message carries on.
    """

    def __init__(self, blob_store: BlobStore) -> None:
        self._blob_store = blob_store

    def extract(
        self,
        structure: list[MimePart],
        part_fetcher: Callable[[int], bytes],
        bucket: str,
    ) -> list[AttachmentDescriptor]:
        """Return descriptors for stored attachments, in part order.

        Args:
            structure: Top-level MIME parts of the message.
            part_fetcher: Returns the still-encoded bytes of a part by index.
            bucket: Date bucket for storage, e.g. ``"2024/06"``.
        """
        descriptors: list[AttachmentDescriptor] = []

        for part in structure:
            filename = attachment_filename(part)
            if not filename:
                continue

            try:
                content = decode_transfer_encoding(part_fetcher(part.index), part.encoding)
            except (binascii.Error, ValueError) as e:
                logger.warning("Attachment %r (part %d) could not be decoded: %s",
                               filename, part.index, e)
                continue
            except FetchError as e:
                logger.warning("Attachment %r (part %d) could not be fetched: %s",
                               filename, part.index, e)
                continue

            if not content:
                logger.debug("Skipping empty attachment %r (part %d)", filename, part.index)
                continue

            safe_name = sanitize_filename(filename)
            try:
                url = self._blob_store.store(safe_name, content, bucket)
            except StorageError as e:
                logger.error("Attachment upload error for %r: %s", safe_name, e)
                continue

            descriptors.append(
                AttachmentDescriptor(file_name=safe_name, byte_size=len(content), storage_url=url)
            )

        return descriptors
