"""
Transcript Models
Timed segments, audio metadata, chunk plans and merged transcripts.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Segment(BaseModel):
    """One contiguous span of speech. end > start is not enforced."""

    start: float
    end: float
    text: str


class AudioInfo(BaseModel):
    """Snapshot of a probed audio file."""

    model_config = ConfigDict(frozen=True)

    duration_seconds: float
    size_bytes: int
    sample_rate: int = 0
    channels: int = 0
    codec: str = "unknown"
    bitrate: int = 0
    format_name: str = "unknown"


class ChunkWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    start_offset: float
    duration: float


class ChunkPlan(BaseModel):
    """Overlapping windows covering [0, total_duration)."""

    model_config = ConfigDict(frozen=True)

    total_duration: float
    chunk_duration: float
    overlap: float
    windows: tuple[ChunkWindow, ...] = ()

    @property
    def starts(self) -> list[float]:
        return [w.start_offset for w in self.windows]


class ChunkTranscriptionResult(BaseModel):
    """Provider response for one chunk, segments in chunk-local time."""

    text: str = ""
    language: str = "unknown"
    duration_seconds: float = 0.0
    segments: list[Segment] = Field(default_factory=list)

    @classmethod
    def from_provider(cls, response: Any) -> "ChunkTranscriptionResult":
        """
        Build from a verbose_json response.
        Accepts both plain dicts (raw HTTP) and SDK objects (attribute access).
        """
        def field(obj: Any, name: str, default: Any = None) -> Any:
            if isinstance(obj, dict):
                return obj.get(name, default)
            return getattr(obj, name, default)

        segments = []
        for seg in field(response, "segments") or []:
            segments.append(Segment(
                start=float(field(seg, "start", 0.0) or 0.0),
                end=float(field(seg, "end", 0.0) or 0.0),
                text=(field(seg, "text", "") or "").strip(),
            ))

        text = field(response, "text", "") or ""
        return cls(
            text=text.strip(),
            language=field(response, "language", None) or "unknown",
            duration_seconds=float(field(response, "duration", 0.0) or 0.0),
            segments=segments,
        )


class TranscribeOptions(BaseModel):
    """Request options passed to the transcription provider."""

    language: Optional[str] = None
    response_format: str = "verbose_json"
    timestamp_granularities: list[str] = Field(default_factory=lambda: ["segment"])
    temperature: Optional[float] = None
    prompt: Optional[str] = None

    @classmethod
    def for_request(cls, language: str = "auto", timestamps: str = "segments") -> "TranscribeOptions":
        granularities = ["word", "segment"] if timestamps == "word" else ["segment"]
        return cls(
            language=None if language in ("", "auto") else language,
            timestamp_granularities=granularities,
        )


class TranscriptMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    duration_seconds: float = 0.0
    language: str = "unknown"
    chunked: bool = False
    chunk_count: Optional[int] = None
    transcoded: bool = False
    latency_ms: int = 0


class MergedTranscript(BaseModel):
    """Final ordered segments for a whole file or live session."""

    model_config = ConfigDict(frozen=True)

    segments: tuple[Segment, ...] = ()
    text: str = ""
    vtt: str = ""
    meta: TranscriptMeta = Field(default_factory=TranscriptMeta)
