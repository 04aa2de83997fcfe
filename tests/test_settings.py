"""Tests for PipingSettings and SettingsProvider."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from email_piping.config.settings import PipingSettings, SettingsProvider
from email_piping.core.cipher import SecretCipher


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep a developer's .env and PIPING_* variables out of these tests."""
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("PIPING_"):
            monkeypatch.delenv(name)


class TestPipingSettings:
    def test_defaults(self) -> None:
        settings = PipingSettings()
        assert settings.poll_interval_seconds == 300
        assert settings.inter_message_delay_seconds == 0.5
        assert settings.mailbox_protocol == "pop3"
        assert settings.body_decoding == "declared"
        assert settings.max_log_entries == 500

    def test_reads_prefixed_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PIPING_POP3_HOST", "mail.example.org")
        monkeypatch.setenv("PIPING_MAILBOX_ID", "4")
        settings = PipingSettings()
        assert settings.pop3_host == "mail.example.org"
        assert settings.mailbox_id == 4

    def test_reads_env_file(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("PIPING_API_USERNAME=agent\n")
        assert PipingSettings().api_username == "agent"

    def test_poll_interval_minimum(self) -> None:
        with pytest.raises(ValidationError):
            PipingSettings(poll_interval_seconds=30)

    def test_unknown_protocol_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PipingSettings(mailbox_protocol="nntp")

    def test_ensure_directories(self, tmp_path: Path) -> None:
        settings = PipingSettings(
            database_path=tmp_path / "db" / "x.db", attachments_dir=tmp_path / "files"
        )
        settings.ensure_directories()
        assert (tmp_path / "db").is_dir()
        assert (tmp_path / "files").is_dir()


class TestSettingsProvider:
    def test_fresh_settings_each_call(self, monkeypatch: pytest.MonkeyPatch) -> None:
        provider = SettingsProvider()
        monkeypatch.setenv("PIPING_POP3_HOST", "first.test")
        assert provider.get_settings().pop3_host == "first.test"
        monkeypatch.setenv("PIPING_POP3_HOST", "second.test")
        assert provider.get_settings().pop3_host == "second.test"

    def test_mailbox_credentials_decrypted(self, cipher: SecretCipher) -> None:
        provider = SettingsProvider(
            cipher=cipher,
            pop3_host="mail.test",
            pop3_username="support",
            pop3_password=cipher.encrypt("pop-secret"),
            mailbox_protocol="imap",
            mailbox_use_ssl=True,
        )
        creds = provider.mailbox_credentials(provider.get_settings())
        assert creds is not None
        assert creds.password == "pop-secret"
        assert creds.protocol == "imap"
        assert creds.use_ssl
        assert "pop-secret" not in repr(creds)

    @pytest.mark.parametrize("missing", ["pop3_host", "pop3_username", "pop3_password"])
    def test_incomplete_mailbox_credentials(self, cipher: SecretCipher, missing: str) -> None:
        values = {
            "pop3_host": "mail.test",
            "pop3_username": "support",
            "pop3_password": cipher.encrypt("pw"),
        }
        values[missing] = ""
        provider = SettingsProvider(cipher=cipher, **values)
        assert provider.mailbox_credentials(provider.get_settings()) is None

    def test_api_credentials(self, cipher: SecretCipher) -> None:
        provider = SettingsProvider(
            cipher=cipher,
            api_base_url="https://helpdesk.test/v2",
            api_username="agent",
            api_password=cipher.encrypt("api-secret"),
            mailbox_id=2,
        )
        creds = provider.api_credentials(provider.get_settings())
        assert creds.base_url == "https://helpdesk.test/v2"
        assert creds.password == "api-secret"
        assert creds.mailbox_id == 2

    def test_cipher_from_settings_seeds(self) -> None:
        provider = SettingsProvider(secret_key_seed="s1", secret_key_salt="s2")
        stored = provider.encrypt_secret("hello")
        assert SecretCipher("s1", "s2").decrypt(stored) == "hello"
        assert provider.decrypt_secret(stored) == "hello"
