"""
SpeechCraft exception hierarchy.

All application-specific exceptions inherit from SpeechCraftError,
enabling centralized error handling in the API middleware layer.
"""

from datetime import UTC, datetime


class SpeechCraftError(Exception):
    """Base exception for all SpeechCraft errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred",
        code: str = "SPEECHCRAFT_ERROR",
        status_code: int = 500,
    ) -> None:
        self.detail = detail
        self.code = code
        self.status_code = status_code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)


class InvalidInputError(SpeechCraftError):
    """Raised when request fields are missing or malformed."""

    def __init__(self, detail: str = "Invalid input") -> None:
        super().__init__(detail=detail, code="INVALID_INPUT", status_code=400)


class UnauthorizedError(SpeechCraftError):
    """Raised when the caller's identity cannot be established."""

    def __init__(self, detail: str = "Unauthorized") -> None:
        super().__init__(detail=detail, code="UNAUTHORIZED", status_code=401)


class UpstreamAuthError(UnauthorizedError):
    """Raised when the owning user cannot be verified with the identity provider."""

    def __init__(self, detail: str = "Invalid or unauthorized user") -> None:
        super().__init__(detail=detail)
        self.code = "UPSTREAM_AUTH_ERROR"


class ForbiddenError(SpeechCraftError):
    """Raised when an authenticated user accesses another user's resources."""

    def __init__(
        self, detail: str = "Access denied. You can only access your own resources."
    ) -> None:
        super().__init__(detail=detail, code="FORBIDDEN", status_code=403)


class NotFoundError(SpeechCraftError):
    """Raised when a resource does not exist (or is not visible to the caller)."""

    def __init__(self, detail: str = "Resource not found") -> None:
        super().__init__(detail=detail, code="NOT_FOUND", status_code=404)


class TranscriptionNotFoundError(NotFoundError):
    """Raised when no transcription matches both the job id and the owner."""

    def __init__(self, transcription_id: str) -> None:
        super().__init__(detail=f"Transcription not found or access denied: {transcription_id}")
        self.code = "TRANSCRIPTION_NOT_FOUND"


class UploadTooLargeError(SpeechCraftError):
    """Raised when an uploaded audio file exceeds ``max_upload_bytes``."""

    def __init__(self, limit_bytes: int) -> None:
        super().__init__(
            detail=f"File too large. Maximum size is {limit_bytes // (1024 * 1024)}MB",
            code="FILE_TOO_LARGE",
            status_code=413,
        )


class RateLimitExceededError(SpeechCraftError):
    """Raised when a client exceeds the request budget for the current window."""

    def __init__(self, retry_after: int, detail: str = "Too many requests from this IP") -> None:
        super().__init__(detail=detail, code="RATE_LIMITED", status_code=429)
        self.retry_after = retry_after


class ConfigurationError(SpeechCraftError):
    """Raised when a required service setting is missing."""

    def __init__(self, detail: str = "Service is not configured") -> None:
        super().__init__(detail=detail, code="CONFIGURATION_ERROR", status_code=500)


class ProviderConfigError(ConfigurationError):
    """Raised when transcription provider credentials are unavailable."""

    def __init__(self, detail: str = "Transcription provider API key not configured") -> None:
        super().__init__(detail=detail)
        self.code = "PROVIDER_CONFIG_ERROR"


class ProviderError(SpeechCraftError):
    """Raised when the transcription vendor returns an error or is unreachable."""

    def __init__(self, detail: str = "Transcription provider request failed") -> None:
        super().__init__(detail=detail, code="PROVIDER_ERROR", status_code=502)


class ProviderTimeoutError(ProviderError):
    """Raised when a job exhausts its polling attempt ceiling."""

    def __init__(
        self,
        detail: str = "Transcription timeout - processing took longer than expected",
    ) -> None:
        super().__init__(detail=detail)
        self.code = "PROVIDER_TIMEOUT"


class StorageError(SpeechCraftError):
    """Raised when the job record store fails."""

    def __init__(self, detail: str = "Storage operation failed") -> None:
        super().__init__(detail=detail, code="STORAGE_ERROR", status_code=500)


class AudioStoreError(SpeechCraftError):
    """Raised when the audio object store rejects an operation."""

    def __init__(self, detail: str = "Audio storage operation failed") -> None:
        super().__init__(detail=detail, code="AUDIO_STORE_ERROR", status_code=500)
