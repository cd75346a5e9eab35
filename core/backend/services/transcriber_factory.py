"""
Transcriber Factory
Creates the cloud transcriber (OpenRouter, Groq or OpenAI) based on config.
"""

from typing import Optional

from config import Settings, TranscriptionMode, settings as default_settings
from services.cloud_transcriber import (
    CloudTranscriberBase,
    GroqTranscriber,
    OpenAITranscriber,
    OpenRouterTranscriber,
)
from services.errors import InvalidConfiguration


class TranscriberFactory:
    _instance: CloudTranscriberBase | None = None
    _mode: TranscriptionMode | None = None

    @classmethod
    async def create(cls, settings: Optional[Settings] = None) -> CloudTranscriberBase:
        settings = settings or default_settings
        mode = settings.get_effective_mode()

        if cls._instance is not None and cls._mode == mode:
            return cls._instance

        if mode == TranscriptionMode.AUTO:
            raise InvalidConfiguration(
                "No transcription provider configured "
                "(set OPENROUTER_API_KEY, GROQ_API_KEY or OPENAI_API_KEY)"
            )

        print(f"Creating transcriber with mode: {mode.value}")
        transcriber = cls._build(mode, settings)

        if not await transcriber.is_available():
            raise InvalidConfiguration(f"{mode.value} transcriber not available")

        print(f"✅ {mode.value} transcriber ready")
        cls._instance = transcriber
        cls._mode = mode
        return transcriber

    @classmethod
    def _build(cls, mode: TranscriptionMode, settings: Settings) -> CloudTranscriberBase:
        timeout = settings.request_timeout_seconds

        if mode == TranscriptionMode.OPENROUTER:
            if not settings.openrouter_api_key:
                raise InvalidConfiguration("OPENROUTER_API_KEY not set")
            return OpenRouterTranscriber(
                api_key=settings.openrouter_api_key,
                base_url=settings.openrouter_base_url,
                model=settings.openrouter_model,
                timeout=timeout,
            )
        if mode == TranscriptionMode.GROQ:
            if not settings.groq_api_key:
                raise InvalidConfiguration("GROQ_API_KEY not set")
            return GroqTranscriber(settings.groq_api_key, settings.groq_model, timeout=timeout)
        if mode == TranscriptionMode.OPENAI:
            if not settings.openai_api_key:
                raise InvalidConfiguration("OPENAI_API_KEY not set")
            return OpenAITranscriber(settings.openai_api_key, settings.openai_model, timeout=timeout)

        raise InvalidConfiguration(f"Unsupported transcription mode: {mode}")

    @classmethod
    async def reset(cls) -> None:
        if cls._instance is not None:
            await cls._instance.close()
        cls._instance = None
        cls._mode = None
