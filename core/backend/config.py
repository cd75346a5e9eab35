"""
Configuration settings.
Supports .env file and environment variables.
"""

from enum import Enum
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class TranscriptionMode(str, Enum):
    OPENROUTER = "openrouter"
    GROQ = "groq"
    OPENAI = "openai"
    AUTO = "auto"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8765

    # Mode
    transcription_mode: TranscriptionMode = TranscriptionMode.AUTO

    # OpenRouter API
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "openai/whisper-large-v3"

    # Groq API
    groq_api_key: Optional[str] = None
    groq_model: str = "whisper-large-v3"

    # OpenAI API
    openai_api_key: Optional[str] = None
    openai_model: str = "whisper-1"

    # Provider limits
    max_file_size_mb: float = 19.5
    request_timeout_seconds: float = 120.0

    # Chunking
    chunk_duration_seconds: float = 90.0
    chunk_overlap_seconds: float = 0.5
    max_parallel_chunks: int = 1

    # Transcoding (tried before chunking)
    transcode_bitrate_kbps: int = 48
    transcode_sample_rate: int = 16000
    transcode_channels: int = 1
    transcode_codec: str = "libopus"

    # Live sessions (16kHz mono s16le)
    live_sample_rate: int = 16000
    live_window_bytes: int = 32000  # ~1s of audio
    live_commit_partials: int = 3
    live_commit_idle_ms: int = 700

    # Storage
    data_dir: str = "./data"
    max_upload_mb: int = 100

    # Security
    api_secret: Optional[str] = None  # If set, requires X-API-KEY header

    @property
    def max_file_size_bytes(self) -> int:
        return int(self.max_file_size_mb * 1024 * 1024)

    def get_effective_mode(self) -> TranscriptionMode:
        """
        Determine effective mode.
        AUTO prioritizes: OpenRouter > Groq > OpenAI.
        Stays AUTO when no key is configured at all.
        """
        if self.transcription_mode != TranscriptionMode.AUTO:
            return self.transcription_mode

        if self.openrouter_api_key: return TranscriptionMode.OPENROUTER
        if self.groq_api_key: return TranscriptionMode.GROQ
        if self.openai_api_key: return TranscriptionMode.OPENAI

        return TranscriptionMode.AUTO

    def has_provider_key(self) -> bool:
        return bool(self.openrouter_api_key or self.groq_api_key or self.openai_api_key)


settings = Settings()
