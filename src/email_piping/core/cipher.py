"""AES-256-CBC + HMAC-SHA256 encryption for passwords stored in settings."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

IV_LENGTH = 16
MAC_LENGTH = 32


class SecretCipher:
    """Encrypt and decrypt short secrets with a key derived from two seeds.

    Stored form is ``base64(iv || hmac || ciphertext)``. The HMAC covers the
    ciphertext only and is verified in constant time before anything is
    decrypted. Every failure mode of ``decrypt`` yields an empty string.
    """

    def __init__(self, seed: str, salt: str) -> None:
        # First 32 hex characters of the digest, kept for compatibility with
        # values already stored by earlier installs.
        digest = hashlib.sha256((seed + salt).encode("utf-8")).hexdigest()
        self._key = digest[:32].encode("ascii")

    def encrypt(self, value: str) -> str:
        """Encrypt a plaintext string. Empty input gives empty output."""
        if not value:
            return ""

        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(value.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        mac = hmac.new(self._key, ciphertext, hashlib.sha256).digest()

        return base64.b64encode(iv + mac + ciphertext).decode("ascii")

    def decrypt(self, value: str) -> str:
        """Decrypt a stored value, or return "" if it is empty, malformed or tampered."""
        if not value:
            return ""

        try:
            raw = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Stored secret is not valid base64")
            return ""

        if len(raw) < IV_LENGTH + MAC_LENGTH:
            logger.warning("Stored secret is too short to be an encrypted value")
            return ""

        iv = raw[:IV_LENGTH]
        mac = raw[IV_LENGTH:IV_LENGTH + MAC_LENGTH]
        ciphertext = raw[IV_LENGTH + MAC_LENGTH:]

        expected = hmac.new(self._key, ciphertext, hashlib.sha256).digest()
        if not hmac.compare_digest(mac, expected):
            logger.warning("Stored secret failed HMAC verification")
            return ""

        try:
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except ValueError:
            # Covers bad block length, bad padding and non-UTF-8 plaintext
            logger.warning("Stored secret could not be decrypted")
            return ""
