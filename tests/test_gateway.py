"""Tests for the HTTP gateway using httpx.MockTransport."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from emotionaid.cache import CacheLayer
from emotionaid.config import ApiConfig
from emotionaid.errors import NetworkError, RemoteRejectedError
from emotionaid.gateway import HttpGateway, build_chat_payload
from emotionaid.models import ChatParams, DiaryEntry, Message
from emotionaid.storage import EncryptedStore


def _config(**overrides) -> ApiConfig:
    values = {
        "base_url": "http://api.test/",
        "api_token": "sk-test-token-123",
        "retry_attempts": 2,
        "retry_base_delay": 0.0,
    }
    values.update(overrides)
    return ApiConfig(**values)


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class Recorder:
    """MockTransport handler that replays scripted responses."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# ---------------------------------------------------------------------------
# Payload building
# ---------------------------------------------------------------------------


class TestBuildChatPayload:
    """Chat-completion request bodies."""

    def test_roles_and_prompt(self) -> None:
        history = [
            Message(author="U1", text="I feel anxious"),
            Message(author="Bot", text="Tell me more"),
        ]
        params = ChatParams(custom_prompt="Be kind", temperature=0.5, max_response_length=120)

        body = build_chat_payload("U1", "It's about work", history, params, "default/model")

        assert body["model"] == "default/model"
        assert body["temperature"] == 0.5
        assert body["max_tokens"] == 120
        assert body["messages"] == [
            {"role": "system", "content": "Be kind"},
            {"role": "user", "content": "I feel anxious"},
            {"role": "assistant", "content": "Tell me more"},
            {"role": "user", "content": "It's about work"},
        ]

    def test_param_model_overrides_default(self) -> None:
        body = build_chat_payload("U1", "hi", [], ChatParams(model="x/y"), "default/model")
        assert body["model"] == "x/y"
        assert body["messages"] == [{"role": "user", "content": "hi"}]


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestSendMessage:
    """Chat requests, auth and reply caching."""

    @pytest.mark.asyncio
    async def test_reply_and_headers(self) -> None:
        handler = Recorder(httpx.Response(200, json=_completion("Breathe slowly")))
        async with HttpGateway(_config(), transport=httpx.MockTransport(handler)) as gw:
            reply = await gw.send_message("U1", "help", [], ChatParams())

        assert reply == "Breathe slowly"
        request = handler.requests[0]
        assert request.method == "POST"
        assert request.url == "http://api.test/api/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test-token-123"
        assert json.loads(request.content)["messages"][-1] == {"role": "user", "content": "help"}

    @pytest.mark.asyncio
    async def test_missing_choices_is_empty_reply(self) -> None:
        handler = Recorder(httpx.Response(200, json={"choices": []}))
        async with HttpGateway(_config(), transport=httpx.MockTransport(handler)) as gw:
            assert await gw.send_message("U1", "help", [], ChatParams()) == ""

    @pytest.mark.asyncio
    async def test_reply_cached(self, store: EncryptedStore) -> None:
        """The same text is answered from the cache the second time."""
        handler = Recorder(httpx.Response(200, json=_completion("cached answer")))
        cache = CacheLayer(store)
        async with HttpGateway(
            _config(), cache=cache, transport=httpx.MockTransport(handler),
        ) as gw:
            first = await gw.send_message("U1", "same", [], ChatParams())
            second = await gw.send_message("U1", "same", [], ChatParams())

        assert first == second == "cached answer"
        assert len(handler.requests) == 1
        assert await store.keys("cache_message_U1_") != []

    @pytest.mark.asyncio
    async def test_user_id_required(self) -> None:
        handler = Recorder(httpx.Response(200, json=_completion("x")))
        async with HttpGateway(_config(), transport=httpx.MockTransport(handler)) as gw:
            with pytest.raises(ValueError):
                await gw.send_message("", "hi", [], ChatParams())
        assert handler.requests == []


class TestRetryPolicy:
    """Which failures are retried."""

    @pytest.mark.asyncio
    async def test_rate_limit_not_retried(self) -> None:
        handler = Recorder(httpx.Response(429, text="slow down"))
        async with HttpGateway(_config(), transport=httpx.MockTransport(handler)) as gw:
            with pytest.raises(RemoteRejectedError) as exc_info:
                await gw.send_message("U1", "hi", [], ChatParams())

        assert exc_info.value.status_code == 429
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self) -> None:
        handler = Recorder(httpx.Response(401, text="bad token"))
        async with HttpGateway(_config(), transport=httpx.MockTransport(handler)) as gw:
            with pytest.raises(RemoteRejectedError):
                await gw.send_message("U1", "hi", [], ChatParams())
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_server_error_retried_then_network_error(self) -> None:
        handler = Recorder(httpx.Response(503, text="down"))
        async with HttpGateway(_config(), transport=httpx.MockTransport(handler)) as gw:
            with pytest.raises(NetworkError):
                await gw.send_message("U1", "hi", [], ChatParams())
        assert len(handler.requests) == 3

    @pytest.mark.asyncio
    async def test_exponential_backoff(self) -> None:
        """Waits double on every retry."""
        handler = Recorder(httpx.Response(502))
        config = _config(retry_base_delay=2.0)
        with patch("emotionaid.gateway.asyncio.sleep", new=AsyncMock()) as sleep:
            async with HttpGateway(config, transport=httpx.MockTransport(handler)) as gw:
                with pytest.raises(NetworkError):
                    await gw.create_diary_entry("U1", DiaryEntry(title="t", content="c"))

        assert [c.args[0] for c in sleep.await_args_list] == [4.0, 8.0]

    @pytest.mark.asyncio
    async def test_transport_error_then_success(self) -> None:
        handler = Recorder(
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json=_completion("back online")),
        )
        async with HttpGateway(_config(), transport=httpx.MockTransport(handler)) as gw:
            reply = await gw.send_message("U1", "hi", [], ChatParams())

        assert reply == "back online"
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_no_retries_configured(self) -> None:
        handler = Recorder(httpx.ConnectError("refused"))
        config = _config(retry_attempts=0)
        async with HttpGateway(config, transport=httpx.MockTransport(handler)) as gw:
            with pytest.raises(NetworkError):
                await gw.send_message("U1", "hi", [], ChatParams())
        assert len(handler.requests) == 1


class TestOtherEndpoints:
    """Audio, diary and ping."""

    @pytest.mark.asyncio
    async def test_send_audio(self, tmp_path: Path) -> None:
        audio = tmp_path / "voice.wav"
        audio.write_bytes(b"RIFF....WAVE")
        handler = Recorder(httpx.Response(200, json={"text": "I hear you"}))

        async with HttpGateway(_config(), transport=httpx.MockTransport(handler)) as gw:
            reply = await gw.send_audio("U1", str(audio))

        assert reply == "I hear you"
        request = handler.requests[0]
        assert request.url.path == "/api/v1/audio/transcriptions"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b"RIFF....WAVE" in request.content

    @pytest.mark.asyncio
    async def test_send_audio_missing_file(self, tmp_path: Path) -> None:
        handler = Recorder(httpx.Response(200, json={}))
        async with HttpGateway(_config(), transport=httpx.MockTransport(handler)) as gw:
            with pytest.raises(ValueError):
                await gw.send_audio("U1", str(tmp_path / "missing.wav"))
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_create_diary_entry(self) -> None:
        handler = Recorder(httpx.Response(201))
        entry = DiaryEntry(title="Walk", content="Felt better outside", tags=["calm"])

        async with HttpGateway(_config(), transport=httpx.MockTransport(handler)) as gw:
            await gw.create_diary_entry("U1", entry)

        request = handler.requests[0]
        assert request.url.path == "/api/v1/diary/U1/entries"
        body = json.loads(request.content)
        assert body["title"] == "Walk"
        assert body["tags"] == ["calm"]

    @pytest.mark.asyncio
    async def test_ping(self) -> None:
        ok = Recorder(httpx.Response(200, json={"status": "ok"}))
        down = Recorder(httpx.ConnectError("refused"))

        async with HttpGateway(_config(), transport=httpx.MockTransport(ok)) as gw:
            assert await gw.ping() is True
        async with HttpGateway(_config(), transport=httpx.MockTransport(down)) as gw:
            assert await gw.ping() is False


class TestSettings:
    """Runtime updates of URL and token."""

    @pytest.mark.asyncio
    async def test_update_base_url_and_token(self) -> None:
        handler = Recorder(httpx.Response(200, json={}))
        async with HttpGateway(
            _config(api_token=None), transport=httpx.MockTransport(handler),
        ) as gw:
            await gw.ping()
            gw.update_base_url("http://other.test:9000/root")
            gw.update_api_token("new-token")
            await gw.ping()

        first, second = handler.requests
        assert "Authorization" not in first.headers
        assert second.url == "http://other.test:9000/root/api/v1/ping"
        assert second.headers["Authorization"] == "Bearer new-token"
