"""Tests for JobSubmitter validation, authorization, and persistence."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.exceptions import (
    InvalidInputError,
    ProviderConfigError,
    ProviderError,
    UpstreamAuthError,
)
from src.core.models import AuthenticatedUser
from src.services.change_feed import ChangeFeed
from src.services.identity import BaseIdentityProvider, JWTIdentityProvider
from src.services.storage.database import get_session
from src.services.storage.repository import TranscriptionRepository
from src.services.transcription.queue import TranscriptionQueue
from src.services.transcription.submitter import JobSubmitter
from tests.fakes import TEST_SECRET, FakeProvider

pytestmark = pytest.mark.usefixtures("db")

OWNER = AuthenticatedUser(id="u1")


@pytest.fixture
def queue():
    return TranscriptionQueue(AsyncMock())


@pytest.fixture
def feed():
    return MagicMock(spec=ChangeFeed)


@pytest.fixture
def submitter(fake_provider, queue, feed):
    return JobSubmitter(fake_provider, JWTIdentityProvider(TEST_SECRET), queue, feed=feed)


async def _find(job_id: str):
    async with get_session() as session:
        return await TranscriptionRepository(session).find(job_id)


async def test_submit_persists_processing_row_before_any_poll(
    submitter: JobSubmitter, fake_provider: FakeProvider, queue, feed
) -> None:
    result = await submitter.submit("u1", "https://x/a.mp3", "a.mp3", caller=OWNER)

    assert result.transcription_id == "job-1"
    assert result.status == "processing"
    assert result.estimated_time == "2-5 minutes"
    row = await _find("job-1")
    assert row.status == "processing"
    assert row.user_id == "u1"
    assert row.file_name == "a.mp3"
    assert fake_provider.poll_counts == {}
    assert queue.is_tracked("job-1")
    feed.publish_insert.assert_called_once()


async def test_submit_requests_provider_features(submitter: JobSubmitter, fake_provider) -> None:
    await submitter.submit("u1", "https://x/a.mp3", caller=OWNER)
    audio_url, options = fake_provider.created[0]
    assert audio_url == "https://x/a.mp3"
    assert options == {"speaker_labels": True, "auto_highlights": True, "sentiment_analysis": True}


async def test_file_name_defaults_and_fields_are_trimmed(submitter: JobSubmitter) -> None:
    result = await submitter.submit("  u1 ", " https://x/a.mp3 ", "   ", caller=OWNER)
    assert result.file_name == "Untitled"
    row = await _find(result.transcription_id)
    assert row.user_id == "u1"
    assert row.audio_url == "https://x/a.mp3"


@pytest.mark.parametrize(
    ("user_id", "audio_url", "file_name", "message"),
    [
        (None, "https://x/a.mp3", None, "Missing required fields"),
        ("u1", None, None, "Missing required fields"),
        ("  ", "https://x/a.mp3", None, "Missing required fields"),
        ("u1", "not-a-url", None, "valid URL"),
        ("u1", "ftp://x/a.mp3", None, "valid URL"),
        ("u1", "https://x/a.mp3", "n" * 256, "less than 255"),
    ],
)
async def test_invalid_input_rejected_before_provider_call(
    submitter: JobSubmitter, fake_provider, user_id, audio_url, file_name, message
) -> None:
    with pytest.raises(InvalidInputError, match=message):
        await submitter.submit(user_id, audio_url, file_name)
    assert fake_provider.created == []


async def test_unconfigured_provider(queue) -> None:
    provider = FakeProvider(configured=False)
    submitter = JobSubmitter(provider, JWTIdentityProvider(TEST_SECRET), queue)
    with pytest.raises(ProviderConfigError):
        await submitter.submit("u1", "https://x/a.mp3", caller=OWNER)
    assert provider.created == []


async def test_unknown_user_rejected(fake_provider, queue) -> None:
    identity = AsyncMock(spec=BaseIdentityProvider)
    identity.has_user_directory = True
    identity.verify_user.return_value = False
    submitter = JobSubmitter(fake_provider, identity, queue)

    with pytest.raises(UpstreamAuthError):
        await submitter.submit("ghost", "https://x/a.mp3")
    assert fake_provider.created == []


async def test_caller_must_own_the_request(submitter: JobSubmitter) -> None:
    caller = AuthenticatedUser(id="u2")
    with pytest.raises(UpstreamAuthError):
        await submitter.submit("u1", "https://x/a.mp3", caller=caller)


async def test_admin_may_submit_for_another_user(submitter: JobSubmitter) -> None:
    caller = AuthenticatedUser(id="admin-1", role="admin")
    result = await submitter.submit("u1", "https://x/a.mp3", caller=caller)
    assert (await _find(result.transcription_id)).user_id == "u1"


async def test_provider_failure_leaves_no_row(queue) -> None:
    provider = FakeProvider()
    provider.create_job = AsyncMock(side_effect=ProviderError("rejected"))
    submitter = JobSubmitter(provider, JWTIdentityProvider(TEST_SECRET), queue)

    with pytest.raises(ProviderError):
        await submitter.submit("u1", "https://x/a.mp3", caller=OWNER)
    assert queue.pending_count == 0


async def test_anonymous_submit_rejected_without_user_directory(
    submitter: JobSubmitter, fake_provider, queue
) -> None:
    with pytest.raises(UpstreamAuthError, match="Authorization is required"):
        await submitter.submit("victim", "https://x/a.mp3")
    assert fake_provider.created == []
    assert queue.pending_count == 0


async def test_anonymous_submit_allowed_when_directory_knows_user(fake_provider, queue) -> None:
    identity = AsyncMock(spec=BaseIdentityProvider)
    identity.has_user_directory = True
    identity.verify_user.return_value = True
    submitter = JobSubmitter(fake_provider, identity, queue)

    result = await submitter.submit("u1", "https://x/a.mp3")

    identity.verify_user.assert_awaited_once_with("u1")
    assert (await _find(result.transcription_id)).user_id == "u1"
