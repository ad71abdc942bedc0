"""
Remote gateway — the boundary between local state and the chat API.

RemoteGateway is the interface the offline queue drains against.
HttpGateway implements it over an OpenRouter-style HTTP API:

    POST api/v1/chat/completions          chat reply
    POST api/v1/audio/transcriptions      voice message reply
    POST api/v1/diary/<userId>/entries    diary mirror
    GET  api/v1/ping                      connectivity check

Transient failures (transport errors, timeouts, 5xx) are retried with
exponential backoff and then raised as NetworkError. 4xx responses,
rate limiting included, raise RemoteRejectedError without retrying.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

import httpx

from .cache import CacheLayer
from .config import ApiConfig
from .errors import NetworkError, RemoteRejectedError
from .models import ChatParams, DiaryEntry, Message

logger = logging.getLogger("emotionaid.gateway")

CHAT_PATH = "api/v1/chat/completions"
AUDIO_PATH = "api/v1/audio/transcriptions"
DIARY_PATH = "api/v1/diary/{user_id}/entries"
PING_PATH = "api/v1/ping"


class RemoteGateway(ABC):
    """Abstract remote API consumed by the offline queue."""

    @abstractmethod
    async def send_message(
        self,
        user_id: str,
        text: str,
        history: list[Message],
        params: ChatParams,
    ) -> str:
        """Send a chat message and return the bot reply."""

    @abstractmethod
    async def send_audio(self, user_id: str, file_path: str) -> str:
        """Upload a recorded voice message and return the bot reply."""

    @abstractmethod
    async def create_diary_entry(self, user_id: str, entry: DiaryEntry) -> None:
        """Mirror a diary entry on the server."""

    async def ping(self) -> bool:
        """Return True when the API is reachable."""
        return True


def _message_cache_key(user_id: str, text: str) -> str:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return f"message_{user_id}_{digest}"


def _token_preview(token: str) -> str:
    return token[:10] + "..."


def build_chat_payload(
    user_id: str,
    text: str,
    history: list[Message],
    params: ChatParams,
    default_model: str,
) -> dict[str, Any]:
    """Build the chat-completion request body.

    History messages authored by the user map to the ``user`` role,
    everything else to ``assistant``.
    """
    messages: list[dict[str, str]] = []
    if params.custom_prompt and params.custom_prompt.strip():
        messages.append({"role": "system", "content": params.custom_prompt})
    for m in history:
        role = "user" if m.author == user_id else "assistant"
        messages.append({"role": role, "content": m.text})
    messages.append({"role": "user", "content": text})

    return {
        "model": params.model or default_model,
        "messages": messages,
        "temperature": params.temperature,
        "top_p": params.top_p,
        "max_tokens": params.max_response_length,
    }


class HttpGateway(RemoteGateway):
    """httpx-backed gateway with bearer auth and retry.

    Args:
        config: API settings (base URL, token, timeout, retry policy).
        cache: Optional cache for chat replies.
        transport: Optional httpx transport (tests use MockTransport).
    """

    def __init__(
        self,
        config: ApiConfig,
        cache: Optional[CacheLayer] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._cache = cache
        timeout = config.timeout_seconds if config.timeout_seconds > 0 else 60.0
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.update_base_url(config.base_url)
        self.update_api_token(config.api_token)
        logger.info("HttpGateway initialized with base URL: %s", self._client.base_url)

    def update_base_url(self, base_url: str) -> None:
        """Point the client at a new API endpoint."""
        self._client.base_url = httpx.URL(base_url.rstrip("/") + "/")
        logger.info("Base URL updated to: %s", self._client.base_url)

    def update_api_token(self, token: Optional[str]) -> None:
        """Set or clear the bearer token."""
        self._client.headers.pop("Authorization", None)
        if token and token.strip():
            self._client.headers["Authorization"] = f"Bearer {token}"
            logger.info("Authorization header set with token: %s", _token_preview(token))
        else:
            logger.warning("API token is empty")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # -------------------------------------------------------------------
    # RemoteGateway
    # -------------------------------------------------------------------

    async def send_message(
        self,
        user_id: str,
        text: str,
        history: list[Message],
        params: ChatParams,
    ) -> str:
        if not user_id:
            raise ValueError("User ID is not set")

        cache_key = _message_cache_key(user_id, text)
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                logger.info("Returning cached reply for user %s", user_id)
                return cached

        payload = build_chat_payload(
            user_id, text, history, params, self._config.selected_model,
        )
        data = await self._request("POST", CHAT_PATH, "send_message", json=payload)

        try:
            reply = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            reply = ""

        if self._cache is not None:
            await self._cache.put(
                cache_key, reply, timedelta(minutes=self._config.reply_cache_minutes),
            )
        return reply

    async def send_audio(self, user_id: str, file_path: str) -> str:
        path = Path(file_path)
        try:
            content = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise ValueError(f"Cannot read audio file {file_path}: {exc}") from exc

        data = await self._request(
            "POST",
            AUDIO_PATH,
            "send_audio",
            data={"user_id": user_id},
            files={"file": (path.name, content, "audio/wav")},
        )
        return str(data.get("text") or data.get("reply") or "")

    async def create_diary_entry(self, user_id: str, entry: DiaryEntry) -> None:
        await self._request(
            "POST",
            DIARY_PATH.format(user_id=user_id),
            "create_diary_entry",
            json=entry.model_dump(mode="json"),
        )

    async def ping(self) -> bool:
        try:
            response = await self._client.get(PING_PATH)
            return response.is_success
        except httpx.HTTPError as exc:
            logger.debug("Ping failed: %s", exc)
            return False

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    async def _request(self, method: str, path: str, action: str, **kwargs: Any) -> dict:
        """Execute a request with the retry policy and parse the JSON body.

        Raises:
            NetworkError: Transport failure or 5xx after all retries.
            RemoteRejectedError: 4xx response (never retried).
        """
        attempts = max(self._config.retry_attempts, 0) + 1
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            if attempt:
                delay = self._config.retry_base_delay * (2 ** attempt)
                logger.warning(
                    "Retrying %s in %.1fs (attempt %d/%d): %s",
                    action, delay, attempt + 1, attempts, last_error,
                )
                await asyncio.sleep(delay)

            logger.info("Executing %s at %s", action, self._client.base_url)
            try:
                response = await self._client.request(method, path, **kwargs)
            except httpx.TransportError as exc:
                last_error = exc
                continue

            if response.status_code >= 500:
                last_error = NetworkError(
                    f"{action} failed: {response.status_code} {response.text[:200]}"
                )
                continue

            if response.status_code >= 400:
                if response.status_code == 429:
                    logger.error("Rate limit exceeded in %s", action)
                raise RemoteRejectedError(response.status_code, response.text[:200])

            if not response.content:
                return {}
            try:
                body = response.json()
            except ValueError as exc:
                raise NetworkError(f"{action}: invalid response format") from exc
            return body if isinstance(body, dict) else {"data": body}

        logger.error("HTTP error in %s: %s", action, last_error)
        if isinstance(last_error, NetworkError):
            raise last_error
        raise NetworkError(f"{action} failed: {last_error}") from last_error
