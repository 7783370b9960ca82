"""
FastAPI dependencies: service accessors and bearer-token authentication.

Services are built once by ``create_app()`` and stored on ``app.state``;
these helpers hand them to route functions.
"""

from fastapi import Depends, Header, Request

from src.core.config import Settings
from src.core.exceptions import ForbiddenError, UnauthorizedError
from src.core.models import AuthenticatedUser
from src.services.identity import BaseIdentityProvider
from src.services.storage.audio_store import BaseAudioStore
from src.services.transcription.reader import TranscriptionReader
from src.services.transcription.submitter import JobSubmitter

BEARER_PREFIX = "Bearer "


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_submitter(request: Request) -> JobSubmitter:
    return request.app.state.submitter


def get_reader(request: Request) -> TranscriptionReader:
    return request.app.state.reader


def get_identity(request: Request) -> BaseIdentityProvider:
    return request.app.state.identity


def get_audio_store(request: Request) -> BaseAudioStore:
    return request.app.state.audio_store


def parse_bearer(authorization: str | None) -> str:
    """Extract the token from an ``Authorization`` header value.

    Raises:
        UnauthorizedError: If the header is missing or not a Bearer credential.
    """
    if not authorization:
        raise UnauthorizedError("Authorization header is required")
    if not authorization.startswith(BEARER_PREFIX):
        raise UnauthorizedError("Invalid authorization format. Use: Bearer <token>")
    token = authorization[len(BEARER_PREFIX) :].strip()
    if not token:
        raise UnauthorizedError("Invalid authorization format. Use: Bearer <token>")
    return token


async def get_current_user(
    authorization: str | None = Header(None),
    identity: BaseIdentityProvider = Depends(get_identity),
) -> AuthenticatedUser:
    """Require a valid bearer token and return the caller."""
    return await identity.authenticate(parse_bearer(authorization))


async def get_optional_user(
    authorization: str | None = Header(None),
    identity: BaseIdentityProvider = Depends(get_identity),
) -> AuthenticatedUser | None:
    """Return the caller when a token is sent; a malformed or bad token still fails."""
    if authorization is None:
        return None
    return await identity.authenticate(parse_bearer(authorization))


def require_owner(user: AuthenticatedUser, user_id: str) -> None:
    """Raise :class:`ForbiddenError` unless *user* is *user_id* or an admin."""
    if user.id != user_id and not user.is_admin:
        raise ForbiddenError()
