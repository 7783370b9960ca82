"""
Async HTTP client for the SpeechCraft transcription API.

Wraps ``httpx.AsyncClient``, attaches the caller's bearer token, unwraps
the response envelope, and converts transport and HTTP failures into a
categorized :class:`APIError` for display.
"""

import logging

import httpx

logger = logging.getLogger(__name__)


class APIError(Exception):
    """User-friendly API error with categorized message.

    Categories: "connection", "timeout", "http", "network", "unknown".
    """

    def __init__(self, message: str, category: str = "unknown", status_code: int | None = None) -> None:
        self.message = message
        self.category = category
        self.status_code = status_code
        super().__init__(message)


class TranscriptionAPIClient:
    """Thin async wrapper around httpx for calling the transcription API.

    All methods return the envelope's ``data`` (or the whole envelope where
    noted) or raise :class:`APIError`.

    Args:
        base_url: API origin, e.g. ``http://localhost:5000``.
        token: Bearer access token of the signed-in user.
        transport: Optional ``httpx`` transport override (used in tests).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        """Execute a request and return the decoded envelope.

        Raises:
            APIError: On connection, timeout, HTTP status, or network errors.
        """
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.ConnectError:
            raise APIError(
                "Transcription server is not reachable. "
                "Start it with: `uvicorn src.api.app:app --port 5000`",
                category="connection",
            ) from None
        except httpx.TimeoutException:
            raise APIError(
                "Request timed out. The server may be overloaded.",
                category="timeout",
            ) from None
        except httpx.HTTPStatusError as exc:
            try:
                detail = exc.response.json().get("message", exc.response.text)
            except ValueError:
                detail = exc.response.text or str(exc)
            raise APIError(str(detail), category="http", status_code=exc.response.status_code) from None
        except httpx.HTTPError as exc:
            raise APIError(f"Network error: {exc}", category="network") from None

    # -- health --

    async def health_check(self) -> dict:
        return await self._request("GET", "/api/health")

    async def check_connection(self) -> tuple[bool, str]:
        """Check if the server is reachable. Returns (ok, message)."""
        try:
            await self.health_check()
            return True, "Connected"
        except APIError as exc:
            return False, exc.message

    # -- audio --

    async def upload_audio(
        self,
        user_id: str,
        file_name: str,
        data: bytes,
        content_type: str = "audio/webm",
    ) -> dict:
        """Upload a recording; returns ``{objectPath, audioUrl, fileName}``."""
        body = await self._request(
            "POST",
            "/api/upload",
            data={"userId": user_id},
            files={"audio": (file_name, data, content_type)},
        )
        return body["data"]

    # -- transcriptions --

    async def start_transcription(
        self,
        user_id: str,
        audio_url: str,
        file_name: str | None = None,
    ) -> dict:
        payload = {"userId": user_id, "audioUrl": audio_url}
        if file_name:
            payload["fileName"] = file_name
        body = await self._request("POST", "/api/transcribe", json=payload)
        return body["data"]

    async def get_status(self, transcription_id: str, user_id: str) -> dict:
        body = await self._request(
            "GET", f"/api/{transcription_id}/status", params={"userId": user_id}
        )
        return body["data"]

    async def get_history(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        status: str | None = None,
        search: str | None = None,
    ) -> dict:
        params: dict = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        if search:
            params["search"] = search
        body = await self._request("GET", f"/api/history/{user_id}", params=params)
        return body["data"]

    async def delete_transcription(self, transcription_id: str, user_id: str) -> dict:
        body = await self._request(
            "DELETE", f"/api/{transcription_id}", params={"userId": user_id}
        )
        return body["data"]

    async def get_stats(self, user_id: str) -> dict:
        body = await self._request("GET", f"/api/stats/{user_id}")
        return body["data"]

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "TranscriptionAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
