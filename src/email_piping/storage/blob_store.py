"""Attachment storage: the BlobStore interface and a local-directory implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from email_piping.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """Persists attachment bytes and returns a URL the ticketing system can fetch."""

    @abstractmethod
    def store(self, filename: str, data: bytes, bucket: str) -> str:
        """Store ``data`` under ``bucket`` and return its URL.

        Raises:
            StorageError: The bytes could not be persisted.
        """


class LocalBlobStore(BlobStore):
    """Write attachments to ``{root}/{bucket}/{filename}``, never overwriting."""

    def __init__(self, root_dir: Path, base_url: str) -> None:
        self._root_dir = root_dir
        self._base_url = base_url.rstrip("/")

    def store(self, filename: str, data: bytes, bucket: str) -> str:
        """Save the attachment and return ``{base_url}/{bucket}/{stored_name}``.

        A numeric suffix is added when the name is already taken in the bucket,
        e.g. ``report.pdf`` becomes ``report-1.pdf``.
        """
        bucket = bucket.strip("/")
        target_dir = self._root_dir / bucket
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            path = self._unique_path(target_dir, filename)
            with path.open("xb") as fh:
                fh.write(data)
        except OSError as e:
            raise StorageError(f"Could not store {filename!r} in {target_dir}: {e}") from e

        logger.debug("Stored attachment: %s (%d bytes)", path, len(data))
        return f"{self._base_url}/{bucket}/{path.name}"

    @staticmethod
    def _unique_path(directory: Path, filename: str) -> Path:
        candidate = directory / filename
        stem, suffix = candidate.stem, candidate.suffix
        counter = 1
        while candidate.exists():
            candidate = directory / f"{stem}-{counter}{suffix}"
            counter += 1
        return candidate
