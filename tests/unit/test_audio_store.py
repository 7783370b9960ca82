"""Tests for the local and Supabase audio stores."""

import json
import time
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from src.core.config import Settings
from src.core.exceptions import AudioStoreError, ConfigurationError, InvalidInputError
from src.services.storage.audio_store import (
    LocalAudioStore,
    SupabaseAudioStore,
    build_object_path,
    create_audio_store,
)


def test_build_object_path_is_user_scoped_and_sanitized() -> None:
    path = build_object_path("u1", "../My Meeting?.webm")
    user_dir, name = path.split("/", 1)
    assert user_dir == "u1"
    assert name.endswith("-My_Meeting_.webm")
    assert "/" not in name


def test_build_object_path_is_unique() -> None:
    assert build_object_path("u1", "a.mp3") != build_object_path("u1", "a.mp3")


# ---------------------------------------------------------------------------
# LocalAudioStore
# ---------------------------------------------------------------------------


@pytest.fixture
def local_store(tmp_path):
    return LocalAudioStore(str(tmp_path), "http://test", signing_key="key")


class TestLocalAudioStore:
    async def test_upload_and_signed_url(self, local_store: LocalAudioStore) -> None:
        object_path = await local_store.upload("u1", "a.mp3", b"ID3data", "audio/mpeg")
        assert local_store.resolve(object_path).read_bytes() == b"ID3data"

        url = await local_store.create_signed_url(object_path, 60)
        query = parse_qs(urlparse(url).query)
        assert url.startswith("http://test/media/u1/")
        assert local_store.object_path_from_url(url) == object_path
        assert local_store.verify(object_path, query["token"][0])

    def test_verify_rejects_other_paths_and_forged_tokens(
        self, local_store: LocalAudioStore, tmp_path
    ) -> None:
        token = local_store.sign("u1/a.mp3", 60)
        assert local_store.verify("u1/a.mp3", token)
        assert not local_store.verify("u2/a.mp3", token)
        assert not local_store.verify("u1/a.mp3", token + "x")
        assert not local_store.verify("u1/a.mp3", "junk")

        other_key = LocalAudioStore(str(tmp_path), "http://test", signing_key="other")
        assert not other_key.verify("u1/a.mp3", token)

    def test_verify_rejects_expired_token(self, local_store: LocalAudioStore, monkeypatch) -> None:
        token = local_store.sign("u1/a.mp3", 60)
        issued = time.time()
        monkeypatch.setattr(time, "time", lambda: issued + 120)
        assert not local_store.verify("u1/a.mp3", token)

    def test_empty_signing_key_is_refused(self, tmp_path) -> None:
        store = LocalAudioStore(str(tmp_path), "http://test", signing_key="")
        with pytest.raises(ConfigurationError):
            store.sign("u1/a.mp3", 60)
        with pytest.raises(ConfigurationError):
            store.verify("u1/a.mp3", "token")

    async def test_delete(self, local_store: LocalAudioStore) -> None:
        object_path = await local_store.upload("u1", "a.mp3", b"x", "audio/mpeg")
        await local_store.delete(object_path)
        assert not local_store.resolve(object_path).exists()
        # Deleting again is not an error
        await local_store.delete(object_path)

    def test_resolve_rejects_escape(self, local_store: LocalAudioStore) -> None:
        with pytest.raises(InvalidInputError):
            local_store.resolve("../outside.mp3")

    def test_foreign_url_is_not_managed(self, local_store: LocalAudioStore) -> None:
        assert local_store.object_path_from_url("https://cdn.example.com/a.mp3") is None

    def test_media_path_on_another_origin_is_not_managed(self, local_store: LocalAudioStore) -> None:
        assert local_store.object_path_from_url("https://evil.example/media/u2/a.mp3") is None
        assert local_store.object_path_from_url("https://test/media/u2/a.mp3") is None
        assert local_store.object_path_from_url("http://test/media/u2/a.mp3") == "u2/a.mp3"


# ---------------------------------------------------------------------------
# SupabaseAudioStore
# ---------------------------------------------------------------------------


def _supabase(handler) -> SupabaseAudioStore:
    return SupabaseAudioStore(
        supabase_url="https://project.supabase.co",
        service_role_key="service-key",
        transport=httpx.MockTransport(handler),
    )


class TestSupabaseAudioStore:
    async def test_upload(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["content_type"] = request.headers["Content-Type"]
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"Key": "user-audio/u1/a.mp3"})

        object_path = await _supabase(handler).upload("u1", "a.mp3", b"x", "audio/mpeg")

        assert object_path.startswith("u1/")
        assert seen["path"] == f"/storage/v1/object/user-audio/{object_path}"
        assert seen["content_type"] == "audio/mpeg"
        assert seen["auth"] == "Bearer service-key"

    async def test_signed_url(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/storage/v1/object/sign/user-audio/u1/a.mp3"
            assert json.loads(request.content) == {"expiresIn": 3600}
            return httpx.Response(
                200, json={"signedURL": "/object/sign/user-audio/u1/a.mp3?token=abc"}
            )

        store = _supabase(handler)
        url = await store.create_signed_url("u1/a.mp3", 3600)

        assert url == "https://project.supabase.co/storage/v1/object/sign/user-audio/u1/a.mp3?token=abc"
        assert store.object_path_from_url(url) == "u1/a.mp3"

    async def test_delete_sends_prefixes(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "DELETE"
            assert request.url.path == "/storage/v1/object/user-audio"
            assert json.loads(request.content) == {"prefixes": ["u1/a.mp3"]}
            return httpx.Response(200, json=[])

        await _supabase(handler).delete("u1/a.mp3")

    async def test_error_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "Bucket not found"})

        with pytest.raises(AudioStoreError, match="400"):
            await _supabase(handler).delete("u1/a.mp3")

    def test_public_url_pattern(self) -> None:
        store = _supabase(lambda request: httpx.Response(200))
        url = "https://project.supabase.co/storage/v1/object/public/user-audio/u1/a%20b.mp3"
        assert store.object_path_from_url(url) == "u1/a b.mp3"
        assert store.object_path_from_url("https://other.example.com/a.mp3") is None

    def test_bucket_path_on_another_origin_is_not_managed(self) -> None:
        store = _supabase(lambda request: httpx.Response(200))
        url = "https://evil.example/storage/v1/object/public/user-audio/u2/a.mp3"
        assert store.object_path_from_url(url) is None


def test_factory_builds_local_store(tmp_path) -> None:
    store = create_audio_store(Settings(audio_store="local", audio_dir=str(tmp_path)))
    assert isinstance(store, LocalAudioStore)


def test_factory_rejects_unknown_backend() -> None:
    with pytest.raises(ValueError, match="Unknown audio store"):
        create_audio_store(Settings(audio_store="s3"))
