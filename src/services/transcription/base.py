"""
Abstract base class for speech-to-text job providers.

Every vendor integration implements this two-call interface, so the
submitter and poller can run against a fake implementation in tests.
"""

from abc import ABC, abstractmethod

from src.core.models import ProviderJob


class BaseTranscriptionProvider(ABC):
    """Interface that every transcription provider must implement."""

    @property
    def is_configured(self) -> bool:
        """Whether credentials are available to call the provider."""
        return True

    @abstractmethod
    async def create_job(self, audio_url: str, options: dict | None = None) -> str:
        """Start an asynchronous transcription job.

        Args:
            audio_url: Publicly reachable (or signed) URL of the audio.
            options: Provider feature flags (speaker labels, highlights, ...).

        Returns:
            The provider-assigned job id.
        """

    @abstractmethod
    async def get_job(self, job_id: str) -> ProviderJob:
        """Fetch the current state of a job.

        Returns:
            A normalized :class:`ProviderJob`.
        """

    async def aclose(self) -> None:
        """Release network resources (no-op by default)."""
