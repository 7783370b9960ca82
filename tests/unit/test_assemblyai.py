"""Tests for the AssemblyAI provider using an httpx mock transport."""

import json

import httpx
import pytest

from src.core.exceptions import ProviderConfigError, ProviderError
from src.core.models import ProviderJobStatus
from src.services.transcription import create_provider
from src.services.transcription.assemblyai import AssemblyAIProvider


def _provider(handler, api_key: str = "aai-key") -> AssemblyAIProvider:
    return AssemblyAIProvider(
        api_key=api_key,
        base_url="https://api.assemblyai.test",
        speech_model="universal",
        transport=httpx.MockTransport(handler),
    )


async def test_create_job_posts_payload() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "tx-123", "status": "queued"})

    job_id = await _provider(handler).create_job(
        "https://x/a.mp3", {"speaker_labels": True, "sentiment_analysis": True}
    )

    assert job_id == "tx-123"
    assert seen["path"] == "/v2/transcript"
    assert seen["auth"] == "aai-key"
    assert seen["body"] == {
        "audio_url": "https://x/a.mp3",
        "speech_model": "universal",
        "speaker_labels": True,
        "sentiment_analysis": True,
    }


async def test_create_job_without_key() -> None:
    provider = _provider(lambda request: httpx.Response(200, json={"id": "x"}), api_key="")
    assert not provider.is_configured
    with pytest.raises(ProviderConfigError):
        await provider.create_job("https://x/a.mp3")


async def test_create_job_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "Invalid audio_url"})

    with pytest.raises(ProviderError, match="Invalid audio_url"):
        await _provider(handler).create_job("https://x/a.mp3")


async def test_create_job_without_id() -> None:
    with pytest.raises(ProviderError, match="no job id"):
        await _provider(lambda request: httpx.Response(200, json={})).create_job("https://x/a.mp3")


async def test_create_job_retries_connection_errors() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"id": "tx-1"})

    assert await _provider(handler).create_job("https://x/a.mp3") == "tx-1"
    assert calls["count"] == 2


async def test_get_job_completed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v2/transcript/tx-123"
        return httpx.Response(
            200,
            json={
                "id": "tx-123",
                "status": "completed",
                "text": "hi",
                "confidence": 0.9,
                "audio_duration": 12,
                "words": [{"text": "hi", "start": 0, "end": 300, "confidence": 0.9}],
            },
        )

    job = await _provider(handler).get_job("tx-123")

    assert job.status == ProviderJobStatus.completed
    assert job.is_terminal
    assert job.text == "hi"
    assert job.audio_duration == 12
    assert job.words[0]["text"] == "hi"


async def test_get_job_error_state() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "tx-1", "status": "error", "error": "bad audio"})

    job = await _provider(handler).get_job("tx-1")
    assert job.status == ProviderJobStatus.error
    assert job.error == "bad audio"


async def test_get_job_http_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream down")

    with pytest.raises(ProviderError, match="500"):
        await _provider(handler).get_job("tx-1")


def test_factory() -> None:
    provider = create_provider("assemblyai", api_key="k")
    assert isinstance(provider, AssemblyAIProvider)
    with pytest.raises(ValueError, match="Unknown transcription provider"):
        create_provider("whisper")
