"""
Encrypted KV store — one protected file per key.

Every save serializes the value to JSON, wraps it in a StoredRecord
envelope, encrypts the bytes with the OS-scoped DataProtector, and
writes atomically (tmp + replace). Loads reverse the chain and return
None for keys that were never saved.

Storage layout:
    <home>/store/
    ├── chat_U1.dat
    ├── diary_entries_U1_page1.dat
    ├── cache_weather%2Ftoday.dat     # "/" percent-encoded
    └── ...

All operations on one store instance are serialized by a single
asyncio.Lock; file I/O runs in worker threads.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote, unquote

from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python

from .errors import CorruptDataError, LocalIOError
from .models import StoredRecord
from .protection import DataProtector

logger = logging.getLogger("emotionaid.storage")

RECORD_SUFFIX = ".dat"
_SAFE_CHARS = "_.-"


# ---------------------------------------------------------------------------
# Key mapping
# ---------------------------------------------------------------------------


def key_to_filename(key: str) -> str:
    """Map an arbitrary key to a filesystem-safe, collision-free filename.

    Letters, digits and ``_.-`` pass through; everything else (path
    separators, drive colons, ``%`` itself) is percent-encoded.
    """
    if not key:
        raise ValueError("Storage key cannot be empty")
    return quote(key, safe=_SAFE_CHARS) + RECORD_SUFFIX


def filename_to_key(filename: str) -> str:
    """Reverse of key_to_filename."""
    if filename.endswith(RECORD_SUFFIX):
        filename = filename[: -len(RECORD_SUFFIX)]
    return unquote(filename)


# ---------------------------------------------------------------------------
# Envelope codec (shared with the offline queue file)
# ---------------------------------------------------------------------------


def encode_payload(protector: DataProtector, data: Any) -> bytes:
    """Serialize JSON-able data and encrypt it."""
    raw = json.dumps(to_jsonable_python(data), ensure_ascii=False, indent=2)
    return protector.protect(raw.encode("utf-8"))


def decode_payload(protector: DataProtector, blob: bytes, label: str) -> Any:
    """Decrypt and parse a blob written by encode_payload."""
    plain = protector.unprotect(blob, label=label)
    try:
        return json.loads(plain.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CorruptDataError(label, f"not valid JSON: {exc}") from exc


def write_atomic(path: Path, blob: bytes) -> None:
    """Write bytes via a temporary sibling and an atomic replace."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_bytes(blob)
        os.replace(tmp_path, path)
    except OSError as exc:
        raise LocalIOError(f"Cannot write {path}: {exc}") from exc


def read_bytes(path: Path) -> Optional[bytes]:
    """Read a file, returning None when it does not exist."""
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise LocalIOError(f"Cannot read {path}: {exc}") from exc


# ---------------------------------------------------------------------------
# EncryptedStore
# ---------------------------------------------------------------------------


class EncryptedStore:
    """Per-key encrypted file persistence.

    Args:
        root: Directory that holds the record files. Only ``*.dat`` files
            directly inside it are ever touched.
        protector: OS-scoped encryption for the file payloads.
    """

    def __init__(self, root: Path, protector: DataProtector) -> None:
        self._root = root
        self._protector = protector
        self._lock = asyncio.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        """Return the record file path for a key."""
        return self._root / key_to_filename(key)

    async def save(self, key: str, value: Any) -> Path:
        """Encrypt and persist a value under key.

        Args:
            key: Record key, e.g. ``chat_U1``.
            value: Pydantic model, list/dict of models, or plain JSON value.

        Returns:
            Path of the written record file.

        Raises:
            LocalIOError: Disk or permission failure.
            EncryptionError: The OS protection secret is unavailable.
        """
        path = self.path_for(key)
        record = StoredRecord(key=key, data=to_jsonable_python(value))
        async with self._lock:
            blob = encode_payload(self._protector, record.model_dump(mode="json"))
            await asyncio.to_thread(write_atomic, path, blob)
        logger.debug("Saved record %s", key)
        return path

    async def load(self, key: str, type_: Any = None) -> Any:
        """Load, decrypt and deserialize the value stored under key.

        Args:
            key: Record key.
            type_: Optional type to validate the data into (e.g.
                ``list[Message]``). Without it the raw JSON value is returned.

        Returns:
            The stored value, or None if the key was never saved.

        Raises:
            CorruptDataError: Decryption, parsing or validation failed.
            LocalIOError: The file exists but cannot be read.
        """
        path = self.path_for(key)
        async with self._lock:
            blob = await asyncio.to_thread(read_bytes, path)
        if blob is None:
            logger.debug("Record %s not found", key)
            return None

        raw = decode_payload(self._protector, blob, label=key)
        try:
            record = StoredRecord.model_validate(raw)
        except ValidationError as exc:
            raise CorruptDataError(key, f"bad envelope: {exc}") from exc

        if type_ is None:
            return record.data
        try:
            return TypeAdapter(type_).validate_python(record.data)
        except ValidationError as exc:
            raise CorruptDataError(key, f"unexpected shape: {exc}") from exc

    async def contains(self, key: str) -> bool:
        """Check whether a record exists for key."""
        path = self.path_for(key)
        async with self._lock:
            return await asyncio.to_thread(path.is_file)

    async def remove(self, key: str) -> bool:
        """Delete the record for key.

        Returns:
            True if a record was removed.
        """
        path = self.path_for(key)
        async with self._lock:
            removed = await asyncio.to_thread(self._unlink, path)
        if removed:
            logger.debug("Removed record %s", key)
        return removed

    async def keys(self, prefix: str = "") -> list[str]:
        """List stored keys (decoded from filenames), optionally by prefix."""
        async with self._lock:
            names = await asyncio.to_thread(self._record_files)
        found = (filename_to_key(p.name) for p in names)
        return sorted(k for k in found if k.startswith(prefix))

    async def clear_all(self) -> int:
        """Remove every record file in the store directory.

        Returns:
            Number of records removed.
        """
        async with self._lock:
            files = await asyncio.to_thread(self._record_files)
            count = 0
            for path in files:
                if await asyncio.to_thread(self._unlink, path):
                    count += 1
        logger.info("Cleared %d records from %s", count, self._root)
        return count

    # -------------------------------------------------------------------
    # Internal helpers (run in worker threads)
    # -------------------------------------------------------------------

    def _record_files(self) -> list[Path]:
        if not self._root.is_dir():
            return []
        return [p for p in self._root.glob(f"*{RECORD_SUFFIX}") if p.is_file()]

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise LocalIOError(f"Cannot remove {path}: {exc}") from exc
