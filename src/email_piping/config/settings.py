"""Configuration via pydantic-settings with .env support."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from email_piping.core.cipher import SecretCipher
from email_piping.core.models import ApiCredentials, MailboxCredentials


class PipingSettings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Password fields hold the encrypted form produced by ``SecretCipher``.
    """

    model_config = SettingsConfigDict(
        env_prefix="PIPING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Ticketing API
    api_base_url: str = ""
    api_username: str = ""
    api_password: str = ""
    mailbox_id: int = 1

    # Mailbox
    pop3_host: str = ""
    pop3_username: str = ""
    pop3_password: str = ""
    mailbox_protocol: Literal["pop3", "imap"] = "pop3"
    mailbox_port: int | None = None
    mailbox_use_ssl: bool = False
    mailbox_folder: str = "INBOX"

    # Schedule & throttling
    poll_interval_seconds: int = Field(default=300, ge=60)
    inter_message_delay_seconds: float = 0.5
    http_timeout_seconds: float = 15.0

    # Parsing
    body_decoding: Literal["declared", "quoted-printable"] = "declared"

    # Secret seeds for password encryption
    secret_key_seed: str = ""
    secret_key_salt: str = ""

    # Storage
    database_path: Path = Path("data/email_piping.db")
    attachments_dir: Path = Path("data/attachments")
    attachments_base_url: str = "file://data/attachments"
    max_log_entries: int = 500

    # Logging
    log_level: str = "INFO"

    def ensure_directories(self) -> None:
        """Create data directories if they don't exist."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self.attachments_dir.mkdir(parents=True, exist_ok=True)


class SettingsProvider:
    """Hands out a fresh settings snapshot per cycle and decrypts stored secrets."""

    def __init__(self, cipher: SecretCipher | None = None, **overrides: object) -> None:
        self._overrides = overrides
        self._cipher = cipher

    def get_settings(self) -> PipingSettings:
        """Load settings from the environment. Never cached, so edits apply next cycle."""
        return PipingSettings(**self._overrides)  # type: ignore[arg-type]

    def _get_cipher(self, settings: PipingSettings | None = None) -> SecretCipher:
        if self._cipher is not None:
            return self._cipher
        settings = settings or self.get_settings()
        return SecretCipher(settings.secret_key_seed, settings.secret_key_salt)

    def decrypt_secret(self, value: str, settings: PipingSettings | None = None) -> str:
        return self._get_cipher(settings).decrypt(value)

    def encrypt_secret(self, value: str, settings: PipingSettings | None = None) -> str:
        return self._get_cipher(settings).encrypt(value)

    def mailbox_credentials(self, settings: PipingSettings) -> MailboxCredentials | None:
        """Decrypt the mailbox password just in time.

        Returns None when host, username or password is missing.
        """
        password = self.decrypt_secret(settings.pop3_password, settings)
        if not settings.pop3_host or not settings.pop3_username or not password:
            return None
        return MailboxCredentials(
            host=settings.pop3_host,
            username=settings.pop3_username,
            password=password,
            protocol=settings.mailbox_protocol,
            port=settings.mailbox_port,
            use_ssl=settings.mailbox_use_ssl,
            folder=settings.mailbox_folder,
        )

    def api_credentials(self, settings: PipingSettings) -> ApiCredentials:
        """Decrypt the API password. Missing values are left empty for the gateway to reject."""
        return ApiCredentials(
            base_url=settings.api_base_url,
            username=settings.api_username,
            password=self.decrypt_secret(settings.api_password, settings),
            mailbox_id=settings.mailbox_id,
        )
