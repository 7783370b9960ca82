"""Job submission: validate, start the provider job, persist, schedule polling.

The submitter is the only writer that inserts rows. It returns as soon as
the provider has assigned a job id and the ``processing`` row is committed;
completion is driven by the work queue.
"""

import logging

from src.core.exceptions import InvalidInputError, ProviderConfigError, UpstreamAuthError
from src.core.models import (
    AuthenticatedUser,
    SubmissionResult,
    TranscriptionFeatures,
)
from src.core.utils import is_valid_url
from src.services.change_feed import ChangeFeed
from src.services.identity import BaseIdentityProvider
from src.services.storage.database import get_session
from src.services.storage.repository import TranscriptionRepository
from src.services.transcription.base import BaseTranscriptionProvider
from src.services.transcription.queue import TranscriptionQueue

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "Untitled"
MAX_FILE_NAME_LENGTH = 255


class JobSubmitter:
    """Starts transcription jobs on behalf of users.

    Args:
        provider: Transcription provider used to create jobs.
        identity: Identity provider used to verify the owning user.
        queue: Work queue that receives the new job id.
        feed: Change feed notified of the inserted row (optional).
        features: Provider analyses requested for every job.
    """

    def __init__(
        self,
        provider: BaseTranscriptionProvider,
        identity: BaseIdentityProvider,
        queue: TranscriptionQueue,
        feed: ChangeFeed | None = None,
        features: TranscriptionFeatures | None = None,
    ) -> None:
        self._provider = provider
        self._identity = identity
        self._queue = queue
        self._feed = feed
        self._features = features or TranscriptionFeatures()

    @staticmethod
    def validate(user_id: str | None, audio_url: str | None, file_name: str | None) -> None:
        """Check request fields.

        Raises:
            InvalidInputError: On missing ids, malformed URLs, or long file names.
        """
        if not user_id or not user_id.strip() or not audio_url or not audio_url.strip():
            raise InvalidInputError("Missing required fields: userId and audioUrl")
        if not is_valid_url(audio_url.strip()):
            raise InvalidInputError("Audio URL must be a valid URL")
        if file_name is not None and len(file_name) > MAX_FILE_NAME_LENGTH:
            raise InvalidInputError(
                f"File name must be less than {MAX_FILE_NAME_LENGTH} characters"
            )

    async def submit(
        self,
        user_id: str | None,
        audio_url: str | None,
        file_name: str | None = None,
        caller: AuthenticatedUser | None = None,
    ) -> SubmissionResult:
        """Start a transcription job and return without waiting for it.

        Args:
            user_id: Owning user.
            audio_url: Signed or public URL of the audio.
            file_name: Display name (defaults to "Untitled").
            caller: Authenticated caller, when the request carried a token.

        Raises:
            InvalidInputError: Malformed input.
            UpstreamAuthError: The owning user cannot be verified.
            ProviderConfigError: Provider credentials are missing.
            ProviderError: The provider refused to create the job.
        """
        self.validate(user_id, audio_url, file_name)
        user_id = user_id.strip()
        audio_url = audio_url.strip()
        file_name = (file_name or "").strip() or DEFAULT_FILE_NAME

        if caller is None:
            if not self._identity.has_user_directory:
                raise UpstreamAuthError("Authorization is required to submit a transcription")
        elif caller.id != user_id and not caller.is_admin:
            raise UpstreamAuthError("Authenticated user does not own this request")
        if not await self._identity.verify_user(user_id):
            raise UpstreamAuthError()

        if not self._provider.is_configured:
            raise ProviderConfigError()

        options = self._features.model_dump()
        job_id = await self._provider.create_job(audio_url, options)
        logger.info("Provider job %s created for user %s", job_id, user_id)

        async with get_session() as session:
            repo = TranscriptionRepository(session)
            row = await repo.create_transcription(
                transcription_id=job_id,
                user_id=user_id,
                audio_url=audio_url,
                file_name=file_name,
            )

        if self._feed is not None:
            self._feed.publish_insert(row)
        self._queue.enqueue(job_id)

        return SubmissionResult(
            transcription_id=job_id,
            file_name=file_name,
            audio_url=audio_url,
            features=self._features,
        )
