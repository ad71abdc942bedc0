"""
Error taxonomy shared by storage, cache, queue and gateway.

Absence is never an error: loads and cache reads return None.
Everything else surfaces as one of these.
"""

from __future__ import annotations


class EmotionAidError(Exception):
    """Base class for every error raised by the client core."""


class StorageError(EmotionAidError):
    """Local persistence failed."""


class LocalIOError(StorageError):
    """Disk or permission failure while reading or writing a record."""


class EncryptionError(StorageError):
    """The OS-scoped protection secret is unavailable."""


class CorruptDataError(StorageError):
    """A record exists but cannot be decrypted or deserialized.

    Recoverable: callers treat the record as absent or reinitialize it.
    """

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Corrupt record '{key}': {reason}")
        self.key = key
        self.reason = reason


class GatewayError(EmotionAidError):
    """A remote API call failed."""


class NetworkError(GatewayError):
    """Transient transport failure; safe to retry later."""


class RemoteRejectedError(GatewayError):
    """The server refused the request (4xx, including rate limiting)."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        super().__init__(f"Request rejected: {status_code} {detail}".strip())
        self.status_code = status_code
        self.detail = detail
