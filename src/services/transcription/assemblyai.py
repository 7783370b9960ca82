"""
AssemblyAI transcription provider.

Uses ``httpx.AsyncClient`` against the v2 REST API:
``POST /v2/transcript`` starts a job, ``GET /v2/transcript/{id}`` reports
its state. Job creation retries transient connection failures; status
polls do not, since the poller treats any communication fault as fatal.
"""

import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import get_settings
from src.core.exceptions import ProviderConfigError, ProviderError
from src.core.models import ProviderJob
from src.services.transcription.base import BaseTranscriptionProvider

logger = logging.getLogger(__name__)


class AssemblyAIProvider(BaseTranscriptionProvider):
    """AssemblyAI REST client.

    Args:
        api_key: AssemblyAI authorization key (falls back to settings).
        base_url: API origin (falls back to settings).
        speech_model: Model name sent with every job ("universal").
        transport: Optional ``httpx`` transport override (used in tests).
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        speech_model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.assemblyai_api_key
        self._base_url = (base_url or settings.assemblyai_base_url).rstrip("/")
        self._speech_model = speech_model or settings.assemblyai_speech_model
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"authorization": self._api_key},
            timeout=timeout or settings.provider_timeout_seconds,
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
        reraise=True,
    )
    async def _post_transcript(self, payload: dict) -> dict:
        resp = await self._client.post("/v2/transcript", json=payload)
        resp.raise_for_status()
        return resp.json()

    async def create_job(self, audio_url: str, options: dict | None = None) -> str:
        if not self.is_configured:
            raise ProviderConfigError("Assembly AI API key not configured")

        payload = {"audio_url": audio_url, "speech_model": self._speech_model, **(options or {})}
        try:
            body = await self._post_transcript(payload)
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            logger.error("AssemblyAI rejected job for %s: %s", audio_url, detail)
            raise ProviderError(f"Transcription provider rejected the request: {detail}") from exc
        except httpx.HTTPError as exc:
            logger.error("AssemblyAI unreachable: %s", exc)
            raise ProviderError(f"Transcription provider unreachable: {exc}") from exc

        job_id = body.get("id")
        if not job_id:
            raise ProviderError("Transcription provider returned no job id")
        return job_id

    async def get_job(self, job_id: str) -> ProviderJob:
        if not self.is_configured:
            raise ProviderConfigError("Assembly AI API key not configured")

        try:
            resp = await self._client.get(f"/v2/transcript/{job_id}")
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"Transcription provider returned {exc.response.status_code}: "
                f"{_error_detail(exc.response)}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Transcription provider unreachable: {exc}") from exc

        body = resp.json()
        return ProviderJob(
            id=body.get("id", job_id),
            status=body["status"],
            text=body.get("text"),
            confidence=body.get("confidence"),
            audio_duration=body.get("audio_duration"),
            words=body.get("words"),
            error=body.get("error"),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_detail(response: httpx.Response) -> str:
    try:
        return response.json().get("error") or response.text
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
