"""Shared fixtures for email piping tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from email_piping.config.settings import SettingsProvider
from email_piping.core.cipher import SecretCipher
from email_piping.core.models import ParsedMessage
from tests.helpers import SALT, SEED


@pytest.fixture
def cipher() -> SecretCipher:
    """Cipher keyed with the test seeds."""
    return SecretCipher(SEED, SALT)


@pytest.fixture
def settings_provider(tmp_path: Path, cipher: SecretCipher) -> SettingsProvider:
    """Provider with complete mailbox and API settings pointing at tmp_path."""
    return SettingsProvider(
        cipher=cipher,
        api_base_url="https://helpdesk.test/wp-json/fluent-support/v2/",
        api_username="agent",
        api_password=cipher.encrypt("api-secret"),
        mailbox_id=3,
        pop3_host="mail.test",
        pop3_username="support@example.org",
        pop3_password=cipher.encrypt("pop-secret"),
        database_path=tmp_path / "data" / "test.db",
        attachments_dir=tmp_path / "attachments",
        attachments_base_url="https://files.test/uploads",
        inter_message_delay_seconds=0.5,
    )


@pytest.fixture
def sample_message() -> ParsedMessage:
    """A parsed new-ticket message without attachments."""
    return ParsedMessage(
        subject="Help needed",
        body="My printer is on fire.",
        sender_email="jane@example.com",
        sender_name="Jane Doe",
    )


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> Path:
    """Temporary database path for tests."""
    return tmp_path / "test.db"
