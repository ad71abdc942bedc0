"""
Composition root — builds every long-lived service exactly once.

    async with Application.create(home) as app:
        await app.chat.append_exchange("U1", "hi", "hello")
        await app.queue.enqueue("SendMessage", {"user_id": "U1", "text": "hi"})
        await app.monitor.run_once()

No module-level or class-level singletons: whoever owns the
Application owns the services.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import keyring
from keyring.errors import KeyringError

from . import APP_NAME
from .analytics import AnalyticsRepository, LexiconEmotionAnalyzer
from .cache import CacheLayer
from .config import ANALYTICS_DB, QUEUE_FILE, STORE_DIR, AppConfig, default_home, load_config
from .connectivity import ConnectivityMonitor
from .gateway import HttpGateway, RemoteGateway
from .logging_config import setup_logging
from .models import EmotionLog
from .offline_queue import OfflineQueue
from .protection import DataProtector
from .repositories import ChatRepository, DiaryRepository, ProfileRepository
from .storage import EncryptedStore

logger = logging.getLogger("emotionaid.app")

API_TOKEN_ENTRY = "api-token"


def resolve_api_token(config: AppConfig) -> Optional[str]:
    """Token from config/env first, then the OS keyring."""
    if config.api.api_token:
        return config.api.api_token
    try:
        return keyring.get_password(APP_NAME, API_TOKEN_ENTRY)
    except (KeyringError, RuntimeError) as exc:
        logger.warning("Cannot read API token from keyring: %s", exc)
        return None


def store_api_token(token: str) -> None:
    """Save the API token in the OS keyring."""
    keyring.set_password(APP_NAME, API_TOKEN_ENTRY, token)


class Application:
    """Owns the storage, queue, gateway and monitor of one client instance.

    Args:
        home: Application data directory.
        config: Loaded configuration.
        protector: OS-scoped encryption shared by store and queue.
        gateway: Remote API; an HttpGateway is built when omitted.
    """

    def __init__(
        self,
        home: Path,
        config: AppConfig,
        protector: Optional[DataProtector] = None,
        gateway: Optional[RemoteGateway] = None,
    ) -> None:
        self.home = home
        self.config = config
        self.protector = protector or DataProtector(service=config.app_name)

        self.store = EncryptedStore(home / STORE_DIR, self.protector)
        self.cache = CacheLayer(self.store)
        self.chat = ChatRepository(self.store)
        self.diary = DiaryRepository(self.store)
        self.profiles = ProfileRepository(self.store)
        self.analytics = AnalyticsRepository(home / ANALYTICS_DB)
        self.emotion_analyzer = LexiconEmotionAnalyzer()
        self.queue = OfflineQueue(
            home / QUEUE_FILE,
            self.protector,
            history=self.chat,
            max_attempts=config.queue.max_attempts,
        )

        if gateway is None:
            if not config.api.api_token:
                config.api.api_token = resolve_api_token(config)
            gateway = HttpGateway(config.api, cache=self.cache)
        self.gateway = gateway

        self.monitor = ConnectivityMonitor(
            self.gateway,
            self.queue,
            interval=config.queue.sync_interval_seconds,
        )

    @classmethod
    def create(
        cls,
        home: Optional[Path] = None,
        **kwargs: Any,
    ) -> "Application":
        """Resolve home, load config, set up logging and build the app."""
        home = (home or default_home()).expanduser()
        home.mkdir(parents=True, exist_ok=True)
        config = load_config(home)
        setup_logging(home, config.log_level)
        app = cls(home, config, **kwargs)
        logger.info("Application initialized at %s", home)
        return app

    async def sync_now(self):
        """Drain the offline queue once, regardless of the timer."""
        return await self.queue.drain_and_sync(self.gateway)

    async def track_emotion(self, user_id: str, text: str) -> EmotionLog:
        """Analyze a user message and store the detected emotion."""
        result = self.emotion_analyzer.analyze(text)
        return await self.analytics.save_emotion(user_id, result)

    async def wipe_all_data(self) -> int:
        """Remove every record, pending queue item, analytics row and avatar."""
        removed = await self.store.clear_all()
        removed += await self.queue.clear()
        removed += await self.analytics.clear_all()
        removed += await self.profiles.clear_avatars()
        logger.info("All local data wiped (%d items)", removed)
        return removed

    async def aclose(self) -> None:
        if self.monitor.running:
            await self.monitor.stop()
        self.analytics.dispose()
        close = getattr(self.gateway, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "Application":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
