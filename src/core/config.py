"""
Application configuration via pydantic-settings.

Loads values from .env file with sensible defaults for local development.
Use ``get_settings()`` to obtain the cached singleton instance.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """SpeechCraft application settings loaded from environment / .env file.

    All settings can be overridden via environment variables or a `.env` file.
    Field names map directly to env var names (case-insensitive).

    Attributes:
        transcription_provider: Which speech-to-text vendor to use ("assemblyai").
        identity_provider: How bearer tokens are verified ("jwt" or "supabase").
        audio_store: Where uploaded audio lives ("local" or "supabase").
        database_url: Async SQLAlchemy connection string.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Silently ignore unrecognized env vars
    )

    # --- Application ---
    app_name: str = "transcription-api"
    app_version: str = "1.0.0"
    environment: str = "development"  # "development" exposes error details in responses
    app_host: str = "0.0.0.0"
    app_port: int = 5000
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    public_base_url: str = "http://localhost:5000"  # Used to build local signed URLs

    # --- Storage ---
    database_url: str = "sqlite+aiosqlite:///data/speechcraft.db"

    # --- Transcription provider ---
    transcription_provider: str = "assemblyai"
    assemblyai_api_key: str = ""  # Required to submit jobs
    assemblyai_base_url: str = "https://api.assemblyai.com"
    assemblyai_speech_model: str = "universal"
    provider_timeout_seconds: float = 30.0

    # --- Job polling ---
    poll_interval_seconds: float = 5.0
    poll_max_attempts: int = 60  # 60 * 5s = 5 minute ceiling per job
    poll_workers: int = 4

    # --- Identity ---
    identity_provider: str = "jwt"
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # --- Audio store ---
    audio_store: str = "local"
    audio_bucket: str = "user-audio"
    audio_dir: str = "data/audio"
    signed_url_expires_in: int = 3600  # seconds
    max_upload_bytes: int = 50 * 1024 * 1024

    # --- Rate limiting ---
    rate_limit_max_requests: int = 100
    rate_limit_window_seconds: float = 15 * 60

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings singleton.

    Uses ``functools.lru_cache`` so the .env file is read only once.
    Subsequent calls return the same ``Settings`` instance.

    Returns:
        Settings: The application-wide configuration object.
    """
    return Settings()
