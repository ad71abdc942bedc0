"""
Application configuration — where data lives and how to reach the API.

Storage layout:
    <home>/                       # EMOTIONAID_HOME or the platform data dir
    ├── config/config.yaml        # AppConfig
    ├── store/                    # Encrypted KV records (*.dat)
    ├── offline_queue.dat         # Encrypted offline action queue
    ├── analytics.db              # Mood tracking (SQLite)
    ├── avatars/                  # Copied profile images
    └── logs/emotionaid.log
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from platformdirs import user_data_dir
from pydantic import BaseModel, Field

from . import APP_NAME

logger = logging.getLogger("emotionaid.config")

CONFIG_FILE = Path("config") / "config.yaml"
STORE_DIR = "store"
QUEUE_FILE = "offline_queue.dat"
ANALYTICS_DB = "analytics.db"
LOG_DIR = "logs"

ENV_BASE_URL = "EMOTIONAID_API_BASE_URL"
ENV_API_TOKEN = "EMOTIONAID_API_TOKEN"


class ApiConfig(BaseModel):
    """Remote chat-completion API settings."""

    base_url: str = "http://localhost:8080/"
    timeout_seconds: float = 30.0
    api_token: Optional[str] = None
    selected_model: str = "openai/gpt-4o-mini"
    retry_attempts: int = 3
    retry_base_delay: float = 2.0
    reply_cache_minutes: int = 10


class QueueConfig(BaseModel):
    """Offline queue and connectivity settings."""

    max_attempts: int = 5
    sync_interval_seconds: int = 60


class AppConfig(BaseModel):
    """Persistent configuration for the client core."""

    app_name: str = APP_NAME
    api: ApiConfig = Field(default_factory=ApiConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    log_level: str = "INFO"


def default_home() -> Path:
    """Resolve the application data directory.

    EMOTIONAID_HOME wins; otherwise the per-user platform data dir.
    """
    env_home = os.environ.get("EMOTIONAID_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path(user_data_dir(APP_NAME, appauthor=False))


def load_config(home: Path) -> AppConfig:
    """Load config.yaml from the home directory.

    Args:
        home: Application data directory.

    Returns:
        AppConfig from disk with environment overrides, or defaults.
    """
    config = AppConfig()
    config_file = home / CONFIG_FILE
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            config = AppConfig(**data)
        except (yaml.YAMLError, ValueError) as exc:
            logger.warning("Failed to load config: %s — using defaults", exc)

    base_url = os.environ.get(ENV_BASE_URL)
    if base_url:
        config.api.base_url = base_url
    token = os.environ.get(ENV_API_TOKEN)
    if token:
        config.api.api_token = token
    return config


def save_config(home: Path, config: AppConfig) -> Path:
    """Persist configuration to config.yaml.

    The API token is never written; it belongs in the keyring or env.
    """
    config_file = home / CONFIG_FILE
    config_file.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json")
    data["api"].pop("api_token", None)
    config_file.write_text(
        yaml.dump(data, default_flow_style=False), encoding="utf-8"
    )
    return config_file
