"""
Pydantic v2 request / response models used across the API layer.

Transcription records keep the snake_case column names of the job table;
computed payloads (submission, pagination, stats) are emitted in camelCase
to match what the web client consumes.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys (``model_dump(by_alias=True)``)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(CamelModel):
    """GET /api/health payload."""

    status: str = "ok"
    service: str = "transcription-api"
    version: str = "1.0.0"


# ---------------------------------------------------------------------------
# Transcription jobs
# ---------------------------------------------------------------------------


class TranscriptionStatus(StrEnum):
    """Persisted job states. ``completed`` and ``error`` are terminal."""

    processing = "processing"
    completed = "completed"
    error = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not TranscriptionStatus.processing


class TranscriptionRecord(BaseModel):
    """One row of the ``transcriptions`` table as exposed to clients."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    audio_url: str
    file_name: str = "Untitled"
    status: TranscriptionStatus
    text: str | None = None
    confidence: float | None = None
    audio_duration: float | None = None
    words: list[dict] | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class TranscribeRequest(BaseModel):
    """POST /api/transcribe request body.

    Fields are optional here so the submitter can report missing values
    with its own messages.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(None, alias="userId")
    audio_url: str | None = Field(None, alias="audioUrl")
    file_name: str | None = Field(None, alias="fileName")


class TranscriptionFeatures(CamelModel):
    """Optional provider analyses requested for every job."""

    speaker_labels: bool = True
    auto_highlights: bool = True
    sentiment_analysis: bool = True


class SubmissionResult(CamelModel):
    """Returned by the submitter as soon as the provider job exists."""

    transcription_id: str
    status: TranscriptionStatus = TranscriptionStatus.processing
    file_name: str
    audio_url: str
    estimated_time: str = "2-5 minutes"
    features: TranscriptionFeatures = Field(default_factory=TranscriptionFeatures)


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_previous_page: bool


class HistorySummary(CamelModel):
    """Per-status counts over the full filtered set, not just one page."""

    total_transcriptions: int = 0
    completed_count: int = 0
    processing_count: int = 0
    error_count: int = 0


class TranscriptionStats(CamelModel):
    total: int = 0
    completed: int = 0
    processing: int = 0
    failed: int = 0
    total_duration: float = 0.0
    this_month: int = 0
    total_duration_formatted: str = "0 minutes"
    success_rate: int = 0


class UploadResult(CamelModel):
    object_path: str
    audio_url: str
    file_name: str


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class ProviderJobStatus(StrEnum):
    """States reported by the transcription vendor."""

    queued = "queued"
    processing = "processing"
    completed = "completed"
    error = "error"


class ProviderJob(BaseModel):
    """Normalized view of a provider transcript resource."""

    id: str
    status: ProviderJobStatus
    text: str | None = None
    confidence: float | None = None
    audio_duration: float | None = None
    words: list[dict] | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (ProviderJobStatus.completed, ProviderJobStatus.error)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class AuthenticatedUser(BaseModel):
    """Caller identity resolved from a bearer token."""

    id: str
    email: str | None = None
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# ---------------------------------------------------------------------------
# Realtime change feed
# ---------------------------------------------------------------------------


class ChangeEventType(StrEnum):
    """Row-level change kinds published by the job record store."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(CamelModel):
    """A single row change, delivered to subscribers of the row's owner."""

    event_type: ChangeEventType
    user_id: str
    new: dict | None = None
    old: dict | None = None

    @property
    def record_id(self) -> str | None:
        row = self.new or self.old or {}
        return row.get("id")
