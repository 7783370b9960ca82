"""
SQLAlchemy ORM models for the SpeechCraft schema.

Tables: ``transcriptions``.
"""

from datetime import UTC, datetime

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from src.services.storage.database import Base


class Transcription(Base):
    """A single audio-to-text job, keyed by the provider's job id."""

    __tablename__ = "transcriptions"
    __table_args__ = (Index("ix_transcriptions_user_created", "user_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    audio_url: Mapped[str] = mapped_column(Text)
    file_name: Mapped[str] = mapped_column(String(255), default="Untitled")
    status: Mapped[str] = mapped_column(String(20), default="processing", index=True)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence: Mapped[float | None] = mapped_column(nullable=True)
    audio_duration: Mapped[float | None] = mapped_column(nullable=True)
    words: Mapped[list | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Transcription id={self.id!r} user={self.user_id!r} status={self.status!r}>"
