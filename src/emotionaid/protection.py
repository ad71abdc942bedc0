"""
OS-scoped data protection — encryption at rest without key management.

The Fernet secret lives in the operating system's credential store
(Windows Credential Manager, macOS Keychain, Secret Service) through
keyring, under the current OS user. Nothing on disk can be decrypted
by another account or on another machine.

Key hierarchy:
    OS credential store (per user)
    └── Fernet master key  (service "EmotionAid", entry "<user>:data-protection")
        └── every record file and the offline queue file
"""

from __future__ import annotations

import base64
import getpass
import logging
from typing import Optional

import keyring
from cryptography.fernet import Fernet, InvalidToken
from keyring.errors import KeyringError

from . import APP_NAME
from .errors import CorruptDataError, EncryptionError

logger = logging.getLogger("emotionaid.protection")

_ENTRY_SUFFIX = "data-protection"


def _fernet_encrypt(data: bytes, key: bytes) -> bytes:
    """Encrypt data with Fernet (AES-128-CBC + HMAC-SHA256)."""
    return Fernet(key).encrypt(data)


def _fernet_decrypt(token: bytes, key: bytes) -> bytes:
    """Decrypt a Fernet token; raises InvalidToken on mismatch."""
    return Fernet(key).decrypt(token)


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "default"


class DataProtector:
    """Encrypts and decrypts payloads with a per-user OS-held secret.

    Args:
        service: Keyring service name.
        username: OS account the secret is scoped to.
        master_key: Explicit Fernet key (urlsafe base64, 32 bytes). When
            given the keyring is never touched.
    """

    def __init__(
        self,
        service: str = APP_NAME,
        username: Optional[str] = None,
        master_key: Optional[bytes] = None,
    ) -> None:
        self._service = service
        self._username = username or _current_user()
        self._key: Optional[bytes] = master_key

    @property
    def entry_name(self) -> str:
        return f"{self._username}:{_ENTRY_SUFFIX}"

    def protect(self, data: bytes) -> bytes:
        """Encrypt a plaintext payload."""
        return _fernet_encrypt(data, self._get_key())

    def unprotect(self, token: bytes, label: str = "") -> bytes:
        """Decrypt a payload written by protect().

        Args:
            token: Ciphertext read from disk.
            label: Record name used in the error message.

        Raises:
            CorruptDataError: The token was written under another secret
                or has been modified.
        """
        try:
            return _fernet_decrypt(token, self._get_key())
        except InvalidToken as exc:
            raise CorruptDataError(label, "decryption failed") from exc

    def _get_key(self) -> bytes:
        """Fetch the master key from the keyring, creating it on first use."""
        if self._key is not None:
            return self._key

        try:
            stored = keyring.get_password(self._service, self.entry_name)
            if stored is None:
                stored = Fernet.generate_key().decode("ascii")
                keyring.set_password(self._service, self.entry_name, stored)
                logger.info("Created data protection key for %s", self._username)
        except (KeyringError, RuntimeError) as exc:
            raise EncryptionError(f"OS credential store unavailable: {exc}") from exc

        key = stored.encode("ascii")
        try:
            if len(base64.urlsafe_b64decode(key)) != 32:
                raise ValueError("wrong key length")
        except ValueError as exc:
            raise EncryptionError(f"Invalid data protection key: {exc}") from exc

        self._key = key
        return key
