"""
models package
"""

from .transcript import (
    AudioInfo,
    ChunkPlan,
    ChunkTranscriptionResult,
    ChunkWindow,
    MergedTranscript,
    Segment,
    TranscribeOptions,
    TranscriptMeta,
)
from .session import LiveEvent, LiveEventType, LiveSession, SessionRegistry

__all__ = [
    "AudioInfo",
    "ChunkPlan",
    "ChunkTranscriptionResult",
    "ChunkWindow",
    "MergedTranscript",
    "Segment",
    "TranscribeOptions",
    "TranscriptMeta",
    "LiveEvent",
    "LiveEventType",
    "LiveSession",
    "SessionRegistry",
]
