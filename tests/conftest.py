"""Shared test fixtures for emotionaid."""

from __future__ import annotations

from pathlib import Path
from typing import Awaitable, Callable, Optional

import keyring
import pytest
from cryptography.fernet import Fernet

from emotionaid.errors import NetworkError
from emotionaid.gateway import RemoteGateway
from emotionaid.models import ChatParams, DiaryEntry
from emotionaid.offline_queue import OfflineQueue
from emotionaid.protection import DataProtector
from emotionaid.repositories import ChatRepository
from emotionaid.storage import EncryptedStore


class FakeGateway(RemoteGateway):
    """Records calls; fails the texts, paths or titles listed in fail_on.

    before_send is awaited with the text of every chat message before it
    is handled.
    """

    def __init__(
        self,
        fail_on: Optional[set[str]] = None,
        online: bool = True,
        before_send: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> None:
        self.fail_on = fail_on or set()
        self.online = online
        self.before_send = before_send
        self.calls: list[tuple] = []

    async def send_message(self, user_id, text, history, params: ChatParams) -> str:
        if self.before_send is not None:
            await self.before_send(text)
        self.calls.append(("send_message", user_id, text, list(history)))
        if text in self.fail_on:
            raise NetworkError(f"offline for {text}")
        return f"reply to {text}"

    async def send_audio(self, user_id, file_path) -> str:
        self.calls.append(("send_audio", user_id, file_path))
        if file_path in self.fail_on:
            raise NetworkError("upload failed")
        return "heard you"

    async def create_diary_entry(self, user_id, entry: DiaryEntry) -> None:
        self.calls.append(("create_diary_entry", user_id, entry.title))
        if entry.title in self.fail_on:
            raise NetworkError("diary sync failed")

    async def ping(self) -> bool:
        return self.online


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Provide a temporary application data directory."""
    app_home = tmp_path / "EmotionAid"
    app_home.mkdir()
    return app_home


@pytest.fixture
def master_key() -> bytes:
    """A fixed Fernet key so tests never touch the OS keyring."""
    return Fernet.generate_key()


@pytest.fixture
def protector(master_key: bytes) -> DataProtector:
    return DataProtector(master_key=master_key)


@pytest.fixture
def store(home: Path, protector: DataProtector) -> EncryptedStore:
    return EncryptedStore(home / "store", protector)


@pytest.fixture
def chat(store: EncryptedStore) -> ChatRepository:
    return ChatRepository(store)


@pytest.fixture
def queue(home: Path, protector: DataProtector, chat: ChatRepository) -> OfflineQueue:
    return OfflineQueue(home / "offline_queue.dat", protector, history=chat)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fake_keyring(monkeypatch) -> dict:
    """Replace the OS credential store with an in-memory dict."""
    secrets: dict[tuple[str, str], str] = {}

    def _get(service, username):
        return secrets.get((service, username))

    def _set(service, username, password):
        secrets[(service, username)] = password

    monkeypatch.setattr(keyring, "get_password", _get)
    monkeypatch.setattr(keyring, "set_password", _set)
    return secrets


@pytest.fixture
def make_gateway():
    """Factory for FakeGateway instances with custom behaviour."""
    return FakeGateway
