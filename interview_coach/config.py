"""Configuration settings using pydantic-settings."""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # LLM service (any OpenAI-compatible endpoint)
    OPENAI_API_KEY: str = Field(default="", description="API key for the LLM endpoint")
    LLM_BASE_URL: Optional[str] = Field(
        default=None,
        description="Base URL of an OpenAI-compatible endpoint (None = api.openai.com)"
    )
    LLM_MODEL: str = Field(default="gpt-4o-mini", description="Chat model for questions, tips and grading")
    TRANSCRIPTION_MODEL: str = Field(default="whisper-1", description="Speech-to-text model")
    TTS_MODEL: str = Field(default="tts-1", description="Text-to-speech model")
    TTS_VOICE: str = Field(default="alloy", description="Text-to-speech voice")
    LLM_TIMEOUT: float = Field(default=60.0, description="LLM request timeout in seconds")

    # Storage
    DATABASE_PATH: str = Field(
        default="data/interview_coach.db",
        description="Path to SQLite database file (session documents and history)"
    )
    LOCAL_STORAGE_DIR: str = Field(
        default="data/local",
        description="Directory holding the local key-value slots"
    )

    # Encryption of the guest session slot.
    # One key for the whole deployment: this hides the slot from casual
    # inspection but is not a per-user secret.
    SESSION_ENCRYPTION_KEY: str = Field(
        default="default-session-key",
        description="Passphrase the local session Fernet key is derived from"
    )

    # Session behaviour
    PERSIST_DEBOUNCE_SECONDS: float = Field(
        default=1.0,
        description="Window in which session mutations are coalesced into one write"
    )
    REVEAL_STEP_SECONDS: float = Field(
        default=2.0,
        description="Duration of each step of the feedback loading sequence"
    )
    HISTORY_LIMIT: int = Field(default=50, description="Maximum stored history entries per user")
    MIN_ANSWER_LENGTH: int = Field(default=10, description="Minimum length of a typed answer")
    MAX_ANSWER_LENGTH: int = Field(default=1500, description="Maximum length of a typed answer")
    ENGAGEMENT_IDLE_SECONDS: float = Field(
        default=30.0,
        description="Seconds after an interaction that still count as engaged time"
    )

    # Audio capture (ffmpeg)
    CAPTURE_INPUT_FORMAT: str = Field(default="pulse", description="ffmpeg input format (pulse, alsa, avfoundation, dshow)")
    CAPTURE_INPUT_DEVICE: str = Field(default="default", description="ffmpeg input device name")

    # Authentication: a user id switches persistence to the per-user document store
    USER_ID: Optional[str] = Field(default=None, description="Authenticated user id (unset = guest)")

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    LOG_FILE: Optional[str] = Field(
        default=None,
        description="Path to log file (unset = stdout only)"
    )

    class Config:
        """Pydantic config."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Global settings instance
settings = Settings()
