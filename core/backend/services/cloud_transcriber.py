"""
Cloud Transcription Service - OpenRouter, Groq & OpenAI Whisper APIs

Sends one audio buffer per request and normalizes the verbose_json reply.
Chunking and merging live in the file transcriber, not here.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from models.transcript import ChunkTranscriptionResult, TranscribeOptions
from services.errors import ProviderRequestFailure


MIME_TYPES = {
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "webm": "audio/webm",
    "flac": "audio/flac",
}


def get_mime_type(filename: str) -> str:
    ext = Path(filename).suffix.lstrip(".").lower()
    return MIME_TYPES.get(ext, "audio/mpeg")


class CloudTranscriberBase(ABC):
    """Base class for cloud transcription services."""

    provider: str = "unknown"

    def __init__(self, timeout: float = 120.0):
        self.timeout = timeout

    @abstractmethod
    async def _request(self, audio_data: bytes, filename: str, options: TranscribeOptions) -> Any:
        """Send one request; returns the raw provider response."""
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if the service is available."""
        pass

    async def close(self) -> None:
        pass

    async def transcribe(
        self,
        audio_data: bytes,
        filename: str,
        options: Optional[TranscribeOptions] = None,
    ) -> ChunkTranscriptionResult:
        """
        Transcribe one audio buffer.
        Timeouts are reported as retryable ProviderRequestFailure.
        """
        options = options or TranscribeOptions()
        started = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                self._request(audio_data, filename, options),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderRequestFailure(
                f"{self.provider} request timed out after {self.timeout}s",
                retryable=True,
            ) from e
        except ProviderRequestFailure:
            raise
        except Exception as e:
            raise ProviderRequestFailure(f"{self.provider} transcription error: {e}") from e

        result = ChunkTranscriptionResult.from_provider(response)
        latency_ms = int((time.perf_counter() - started) * 1000)
        print(f"🎙️ [{self.provider}] Transcribed {len(audio_data)} bytes in {latency_ms}ms")
        return result

    async def transcribe_file(
        self,
        path: str,
        options: Optional[TranscribeOptions] = None,
    ) -> ChunkTranscriptionResult:
        """Read a file and transcribe it in one request."""
        audio_data = await asyncio.to_thread(Path(path).read_bytes)
        return await self.transcribe(audio_data, Path(path).name, options)


class OpenRouterTranscriber(CloudTranscriberBase):
    """
    Transcription through OpenRouter's OpenAI-compatible audio endpoint.
    Raw multipart over aiohttp.
    """

    provider = "openrouter"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        model: str = "openai/whisper-large-v3",
        timeout: float = 120.0,
    ):
        super().__init__(timeout=timeout)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._session = None

    async def _get_session(self):
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            import aiohttp
            self._session = aiohttp.ClientSession()
        return self._session

    async def is_available(self) -> bool:
        return bool(self.api_key)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    def build_form(self, audio_data: bytes, filename: str, options: TranscribeOptions):
        import aiohttp

        form = aiohttp.FormData()
        form.add_field("file", audio_data, filename=filename, content_type=get_mime_type(filename))
        form.add_field("model", self.model)
        if options.language:
            form.add_field("language", options.language)
        if options.temperature is not None:
            form.add_field("temperature", str(options.temperature))
        if options.prompt:
            form.add_field("prompt", options.prompt)
        if options.response_format:
            form.add_field("response_format", options.response_format)
        for granularity in options.timestamp_granularities:
            form.add_field("timestamp_granularities[]", granularity)
        return form

    async def _request(self, audio_data: bytes, filename: str, options: TranscribeOptions) -> Any:
        session = await self._get_session()
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": "https://github.com/live-transcriber/live-transcriber",
            "X-Title": "Live Transcriber",
        }

        async with session.post(
            f"{self.base_url}/audio/transcriptions",
            headers=headers,
            data=self.build_form(audio_data, filename, options),
        ) as response:
            if response.status != 200:
                error_text = await response.text()
                raise ProviderRequestFailure(
                    f"OpenRouter API error ({response.status}): {error_text}",
                    retryable=response.status == 429 or response.status >= 500,
                )
            return await response.json()


class _SDKTranscriber(CloudTranscriberBase):
    """Shared request shape of the OpenAI-style SDK clients."""

    def __init__(self, api_key: str, model: str, timeout: float = 120.0):
        super().__init__(timeout=timeout)
        self.api_key = api_key
        self.model = model
        self._client = None

    @abstractmethod
    async def _get_client(self):
        pass

    async def is_available(self) -> bool:
        try:
            await self._get_client()
            return True
        except Exception as e:
            print(f"⚠️ {self.provider} not available: {e}")
            return False

    async def _request(self, audio_data: bytes, filename: str, options: TranscribeOptions) -> Any:
        client = await self._get_client()
        kwargs: dict[str, Any] = {
            "file": (filename, audio_data),
            "model": self.model,
            "response_format": options.response_format,
            "timestamp_granularities": options.timestamp_granularities,
        }
        if options.language:
            kwargs["language"] = options.language
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.prompt:
            kwargs["prompt"] = options.prompt

        return await client.audio.transcriptions.create(**kwargs)


class GroqTranscriber(_SDKTranscriber):
    """
    Transcription using Groq Whisper API.

    Groq offers very fast Whisper inference with a generous free tier.
    """

    provider = "groq"

    def __init__(self, api_key: str, model: str = "whisper-large-v3", timeout: float = 120.0):
        super().__init__(api_key, model, timeout)

    async def _get_client(self):
        """Get or create Groq client."""
        if self._client is None:
            from groq import AsyncGroq
            self._client = AsyncGroq(api_key=self.api_key)
        return self._client


class OpenAITranscriber(_SDKTranscriber):
    """
    Transcription using OpenAI Whisper API.
    """

    provider = "openai"

    def __init__(self, api_key: str, model: str = "whisper-1", timeout: float = 120.0):
        super().__init__(api_key, model, timeout)

    async def _get_client(self):
        """Get or create OpenAI client."""
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client
