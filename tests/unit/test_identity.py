"""Tests for bearer-token decoding and the identity providers."""

import httpx
import pytest

from src.core.config import Settings
from src.core.exceptions import ConfigurationError, UnauthorizedError, UpstreamAuthError
from src.services.identity import (
    JWTIdentityProvider,
    SupabaseIdentityProvider,
    create_access_token,
    create_identity_provider,
    decode_access_token,
)
from tests.fakes import TEST_SECRET, make_token

# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------


def test_decode_valid_token() -> None:
    token = create_access_token("u1", TEST_SECRET, email="u1@example.com")
    user = decode_access_token(token, TEST_SECRET)
    assert user.id == "u1"
    assert user.email == "u1@example.com"
    assert user.role == "user"
    assert not user.is_admin


def test_role_from_app_metadata() -> None:
    user = decode_access_token(make_token("boss", role="admin"), TEST_SECRET)
    assert user.is_admin


def test_wrong_secret_rejected() -> None:
    token = create_access_token("u1", "other-secret")
    with pytest.raises(UnauthorizedError, match="Invalid or expired token"):
        decode_access_token(token, TEST_SECRET)


def test_expired_token_rejected() -> None:
    token = create_access_token("u1", TEST_SECRET, exp=1)
    with pytest.raises(UnauthorizedError):
        decode_access_token(token, TEST_SECRET)


def test_missing_subject_rejected() -> None:
    token = create_access_token("", TEST_SECRET)
    with pytest.raises(UnauthorizedError, match="subject"):
        decode_access_token(token, TEST_SECRET)


def test_missing_secret_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        decode_access_token("anything", "")


async def test_jwt_provider_verify_user() -> None:
    provider = JWTIdentityProvider(TEST_SECRET)
    assert await provider.verify_user("u1") is True
    assert await provider.verify_user("  ") is False
    assert (await provider.authenticate(make_token("u1"))).id == "u1"


# ---------------------------------------------------------------------------
# Supabase
# ---------------------------------------------------------------------------


def _supabase(handler, jwt_secret: str = TEST_SECRET) -> SupabaseIdentityProvider:
    return SupabaseIdentityProvider(
        supabase_url="https://project.supabase.co",
        service_role_key="service-key",
        jwt_secret=jwt_secret,
        transport=httpx.MockTransport(handler),
    )


async def test_supabase_authenticate_via_auth_api() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/user"
        assert request.headers["Authorization"] == "Bearer user-token"
        assert request.headers["apikey"] == "service-key"
        return httpx.Response(
            200,
            json={"id": "u1", "email": "u1@example.com", "app_metadata": {"role": "admin"}},
        )

    user = await _supabase(handler).authenticate("user-token")
    assert user.id == "u1"
    assert user.is_admin


async def test_supabase_falls_back_to_local_jwt() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"msg": "invalid JWT"})

    user = await _supabase(handler).authenticate(make_token("u1"))
    assert user.id == "u1"


async def test_supabase_rejects_when_fallback_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(UnauthorizedError):
        await _supabase(handler, jwt_secret="").authenticate("user-token")


@pytest.mark.parametrize(("status", "expected"), [(200, True), (404, False), (400, False)])
async def test_supabase_verify_user(status: int, expected: bool) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/admin/users/u1"
        return httpx.Response(status, json={})

    assert await _supabase(handler).verify_user("u1") is expected


async def test_supabase_verify_user_upstream_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={})

    with pytest.raises(UpstreamAuthError):
        await _supabase(handler).verify_user("u1")


def test_supabase_requires_credentials() -> None:
    with pytest.raises(ConfigurationError):
        SupabaseIdentityProvider(supabase_url="", service_role_key="")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def test_factory_builds_jwt_provider() -> None:
    provider = create_identity_provider(Settings(identity_provider="jwt", jwt_secret="s"))
    assert isinstance(provider, JWTIdentityProvider)


def test_factory_rejects_unknown_provider() -> None:
    with pytest.raises(ValueError, match="Unknown identity provider"):
        create_identity_provider(Settings(identity_provider="ldap"))
