"""
Storage module - Job record store and audio object storage.
"""

from src.services.storage.audio_store import (
    BaseAudioStore,
    LocalAudioStore,
    SupabaseAudioStore,
    create_audio_store,
)
from src.services.storage.database import (
    Base,
    close_db,
    get_engine,
    get_session,
    init_db,
    reset_engine,
)
from src.services.storage.models_db import Transcription
from src.services.storage.repository import TranscriptionRepository

__all__ = [
    "Base",
    "BaseAudioStore",
    "LocalAudioStore",
    "SupabaseAudioStore",
    "Transcription",
    "TranscriptionRepository",
    "close_db",
    "create_audio_store",
    "get_engine",
    "get_session",
    "init_db",
    "reset_engine",
]
