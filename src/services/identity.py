"""
Identity providers: bearer-token authentication and owner verification.

``JWTIdentityProvider`` verifies HS256 tokens locally with python-jose.
``SupabaseIdentityProvider`` asks Supabase Auth (GoTrue) who a token
belongs to, falls back to local JWT verification when the lookup fails,
and checks that a user id exists through the admin API before a job is
submitted on that user's behalf.
"""

import logging
from abc import ABC, abstractmethod

import httpx
from jose import JWTError, jwt

from src.core.config import Settings, get_settings
from src.core.exceptions import ConfigurationError, UnauthorizedError, UpstreamAuthError
from src.core.models import AuthenticatedUser

logger = logging.getLogger(__name__)


def decode_access_token(token: str, secret: str, algorithm: str = "HS256") -> AuthenticatedUser:
    """Decode a signed access token into an :class:`AuthenticatedUser`.

    Raises:
        ConfigurationError: If no signing secret is configured.
        UnauthorizedError: If the token is invalid, expired, or has no subject.
    """
    if not secret:
        raise ConfigurationError("JWT secret not configured")
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"verify_aud": False},
        )
    except JWTError as exc:
        raise UnauthorizedError("Invalid or expired token") from exc

    subject = str(payload.get("sub") or "").strip()
    if not subject:
        raise UnauthorizedError("Token missing subject")
    app_metadata = payload.get("app_metadata") or {}
    return AuthenticatedUser(
        id=subject,
        email=payload.get("email"),
        role=app_metadata.get("role") or payload.get("role") or "user",
    )


def create_access_token(user_id: str, secret: str, algorithm: str = "HS256", **claims) -> str:
    """Sign an access token for *user_id* (used by tooling and tests)."""
    return jwt.encode({"sub": user_id, **claims}, secret, algorithm=algorithm)


class BaseIdentityProvider(ABC):
    """Interface that every identity backend must implement.

    Backends without a user directory (``has_user_directory = False``) cannot
    vouch for a bare user id, so submissions through them need a caller.
    """

    has_user_directory = False

    @abstractmethod
    async def authenticate(self, token: str) -> AuthenticatedUser:
        """Resolve a bearer token to a user or raise :class:`UnauthorizedError`."""

    @abstractmethod
    async def verify_user(self, user_id: str) -> bool:
        """Return True if *user_id* is a known user that may own jobs."""

    async def aclose(self) -> None:
        """Release network resources (no-op by default)."""


class JWTIdentityProvider(BaseIdentityProvider):
    """Local HS256 verification with no user directory.

    Any non-empty user id is accepted by :meth:`verify_user`, so ownership
    rests entirely on the token subject matching the requested user id.
    """

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def authenticate(self, token: str) -> AuthenticatedUser:
        return decode_access_token(token, self._secret, self._algorithm)

    async def verify_user(self, user_id: str) -> bool:
        return bool(user_id and user_id.strip())


class SupabaseIdentityProvider(BaseIdentityProvider):
    """Supabase Auth backed identity.

    Args:
        supabase_url: Project URL.
        service_role_key: Service-role key (needed for the admin user lookup).
        jwt_secret: Project JWT secret for the local fallback (optional).
        transport: Optional ``httpx`` transport override (used in tests).
    """

    has_user_directory = True

    def __init__(
        self,
        supabase_url: str,
        service_role_key: str,
        jwt_secret: str = "",
        algorithm: str = "HS256",
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        if not supabase_url or not service_role_key:
            raise ConfigurationError("Missing Supabase URL or service role key")
        self._service_key = service_role_key
        self._jwt_secret = jwt_secret
        self._algorithm = algorithm
        self._client = httpx.AsyncClient(
            base_url=f"{supabase_url.rstrip('/')}/auth/v1",
            headers={"apikey": service_role_key},
            timeout=timeout,
            transport=transport,
        )

    async def authenticate(self, token: str) -> AuthenticatedUser:
        try:
            resp = await self._client.get("/user", headers={"Authorization": f"Bearer {token}"})
            if resp.status_code == 200:
                body = resp.json()
                return AuthenticatedUser(
                    id=body["id"],
                    email=body.get("email"),
                    role=(body.get("app_metadata") or {}).get("role") or "user",
                )
            logger.info("Supabase rejected token (status %s), trying JWT verification", resp.status_code)
        except httpx.HTTPError as exc:
            logger.info("Supabase auth failed (%s), trying JWT verification", exc)

        if not self._jwt_secret:
            raise UnauthorizedError("Invalid or expired token")
        return decode_access_token(token, self._jwt_secret, self._algorithm)

    async def verify_user(self, user_id: str) -> bool:
        try:
            resp = await self._client.get(
                f"/admin/users/{user_id}",
                headers={"Authorization": f"Bearer {self._service_key}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("Supabase admin lookup failed for %s: %s", user_id, exc)
            raise UpstreamAuthError(f"Identity provider unreachable: {exc}") from exc
        if resp.status_code == 200:
            return True
        if resp.status_code in (400, 404):
            return False
        raise UpstreamAuthError(f"Identity provider returned {resp.status_code}")

    async def aclose(self) -> None:
        await self._client.aclose()


def create_identity_provider(settings: Settings | None = None, **kwargs) -> BaseIdentityProvider:
    """Factory returning the identity backend named by ``settings.identity_provider``.

    Raises:
        ValueError: If the provider name is unknown.
    """
    settings = settings or get_settings()
    name = settings.identity_provider
    if name == "jwt":
        return JWTIdentityProvider(settings.jwt_secret, settings.jwt_algorithm)
    if name == "supabase":
        return SupabaseIdentityProvider(
            supabase_url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
            jwt_secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            **kwargs,
        )
    raise ValueError(f"Unknown identity provider: {name}")
