"""
Audio object storage: uploaded/recorded blobs and time-limited signed URLs.

Two backends implement :class:`BaseAudioStore`:

* :class:`LocalAudioStore` keeps blobs under ``settings.audio_dir`` and
  signs ``/media/...`` URLs with an ``itsdangerous`` timed serializer so
  the API can serve them.
* :class:`SupabaseAudioStore` talks to the Supabase Storage REST API.

Object paths are always ``<user_id>/<file name>``.
"""

import logging
import re
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import quote, unquote, urlencode, urlparse

import httpx
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from src.core.config import Settings, get_settings
from src.core.exceptions import AudioStoreError, ConfigurationError, InvalidInputError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_MEDIA_SALT = "speechcraft-media"


def _origin(url: str) -> tuple[str, str]:
    parsed = urlparse(url)
    return parsed.scheme.lower(), parsed.netloc.lower()


def build_object_path(user_id: str, file_name: str) -> str:
    """Return a unique ``<user_id>/<millis>-<rand>-<name>`` object path."""
    safe_name = _UNSAFE_CHARS.sub("_", Path(file_name).name).strip("._") or "audio"
    unique = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
    return f"{user_id}/{unique}-{safe_name}"


class BaseAudioStore(ABC):
    """Interface that every audio storage backend must implement."""

    @abstractmethod
    async def upload(self, user_id: str, file_name: str, data: bytes, content_type: str) -> str:
        """Store a blob and return its object path."""

    @abstractmethod
    async def create_signed_url(self, object_path: str, expires_in: int) -> str:
        """Return a URL granting read access to *object_path* for *expires_in* seconds."""

    @abstractmethod
    async def delete(self, object_path: str) -> None:
        """Remove a blob. Raises :class:`AudioStoreError` on failure."""

    @abstractmethod
    def object_path_from_url(self, url: str) -> str | None:
        """Extract the object path from a URL this store produced, else ``None``.

        URLs on any other origin are never treated as managed blobs.
        """

    async def aclose(self) -> None:
        """Release network resources (no-op by default)."""


class LocalAudioStore(BaseAudioStore):
    """Filesystem-backed store serving blobs through ``/media/{object_path}``.

    Signed URLs carry a ``token`` produced by ``URLSafeTimedSerializer``
    holding the object path and its lifetime.

    Args:
        root_dir: Directory holding ``<user_id>/`` subfolders.
        public_base_url: Origin the API is reachable on.
        signing_key: Secret for signed URLs. Signing and verification are
            refused while it is empty.
    """

    MEDIA_PREFIX = "/media/"

    def __init__(self, root_dir: str, public_base_url: str, signing_key: str) -> None:
        self._root = Path(root_dir).resolve()
        self._base_url = public_base_url.rstrip("/")
        self._signing_key = signing_key

    @property
    def _serializer(self) -> URLSafeTimedSerializer:
        if not self._signing_key:
            raise ConfigurationError("Media signing key not configured")
        return URLSafeTimedSerializer(self._signing_key, salt=_MEDIA_SALT)

    def resolve(self, object_path: str) -> Path:
        """Map an object path to a file inside the root directory.

        Raises:
            InvalidInputError: If the path escapes the root directory.
        """
        resolved = (self._root / object_path).resolve()
        if not resolved.is_relative_to(self._root):
            raise InvalidInputError(f"Object path outside audio store: {object_path}")
        return resolved

    def sign(self, object_path: str, expires_in: int) -> str:
        return self._serializer.dumps({"path": object_path, "ttl": expires_in})

    def verify(self, object_path: str, token: str) -> bool:
        """Check that *token* was issued for *object_path* and has not expired."""
        serializer = self._serializer
        try:
            payload = serializer.loads(token)
            if not isinstance(payload, dict) or payload.get("path") != object_path:
                return False
            serializer.loads(token, max_age=int(payload.get("ttl", 0)))
        except SignatureExpired:
            logger.info("Expired media signature for %s", object_path)
            return False
        except (BadSignature, TypeError, ValueError):
            return False
        return True

    async def upload(self, user_id: str, file_name: str, data: bytes, content_type: str) -> str:
        object_path = build_object_path(user_id, file_name)
        target = self.resolve(object_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise AudioStoreError(f"Failed to store audio: {exc}") from exc
        logger.info("Stored audio %s (%d bytes, %s)", object_path, len(data), content_type)
        return object_path

    async def create_signed_url(self, object_path: str, expires_in: int) -> str:
        query = urlencode({"token": self.sign(object_path, expires_in)})
        return f"{self._base_url}{self.MEDIA_PREFIX}{quote(object_path)}?{query}"

    async def delete(self, object_path: str) -> None:
        target = self.resolve(object_path)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise AudioStoreError(f"Failed to delete audio {object_path}: {exc}") from exc

    def object_path_from_url(self, url: str) -> str | None:
        if _origin(url) != _origin(self._base_url):
            return None
        path = urlparse(url).path
        if not path.startswith(self.MEDIA_PREFIX):
            return None
        return unquote(path[len(self.MEDIA_PREFIX) :]) or None


class SupabaseAudioStore(BaseAudioStore):
    """Supabase Storage backend using the service-role key.

    Args:
        supabase_url: Project URL, e.g. ``https://xyz.supabase.co``.
        service_role_key: Service-role API key.
        bucket: Storage bucket name (``user-audio``).
        transport: Optional ``httpx`` transport override (used in tests).
    """

    def __init__(
        self,
        supabase_url: str,
        service_role_key: str,
        bucket: str = "user-audio",
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        if not supabase_url or not service_role_key:
            raise ConfigurationError("Missing Supabase URL or service role key")
        self._storage_url = f"{supabase_url.rstrip('/')}/storage/v1"
        self._bucket = bucket
        self._client = httpx.AsyncClient(
            base_url=self._storage_url,
            headers={
                "apikey": service_role_key,
                "Authorization": f"Bearer {service_role_key}",
            },
            timeout=timeout,
            transport=transport,
        )
        self._url_pattern = re.compile(
            rf"/storage/v1/object/(?:public|sign|authenticated)/{re.escape(bucket)}/(.+)$"
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as exc:
            raise AudioStoreError(
                f"Supabase storage returned {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AudioStoreError(f"Supabase storage unreachable: {exc}") from exc

    async def upload(self, user_id: str, file_name: str, data: bytes, content_type: str) -> str:
        object_path = build_object_path(user_id, file_name)
        await self._request(
            "POST",
            f"/object/{self._bucket}/{quote(object_path)}",
            content=data,
            headers={"Content-Type": content_type, "x-upsert": "false"},
        )
        return object_path

    async def create_signed_url(self, object_path: str, expires_in: int) -> str:
        resp = await self._request(
            "POST",
            f"/object/sign/{self._bucket}/{quote(object_path)}",
            json={"expiresIn": expires_in},
        )
        signed = resp.json().get("signedURL") or resp.json().get("signedUrl")
        if not signed:
            raise AudioStoreError("Supabase storage did not return a signed URL")
        return f"{self._storage_url}{signed}"

    async def delete(self, object_path: str) -> None:
        await self._request(
            "DELETE",
            f"/object/{self._bucket}",
            json={"prefixes": [object_path]},
        )

    def object_path_from_url(self, url: str) -> str | None:
        if _origin(url) != _origin(self._storage_url):
            return None
        match = self._url_pattern.search(urlparse(url).path)
        return unquote(match.group(1)) if match else None

    async def aclose(self) -> None:
        await self._client.aclose()


def create_audio_store(settings: Settings | None = None, **kwargs) -> BaseAudioStore:
    """Factory returning the audio store configured by ``settings.audio_store``.

    Raises:
        ValueError: If the backend name is unknown.
    """
    settings = settings or get_settings()
    backend = settings.audio_store
    if backend == "local":
        return LocalAudioStore(
            root_dir=settings.audio_dir,
            public_base_url=settings.public_base_url,
            signing_key=settings.jwt_secret,
        )
    if backend == "supabase":
        return SupabaseAudioStore(
            supabase_url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
            bucket=settings.audio_bucket,
            **kwargs,
        )
    raise ValueError(f"Unknown audio store: {backend}")
