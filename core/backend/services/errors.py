"""
Transcription errors.
Nothing here is retried internally; retry policy belongs to the caller.
"""

from typing import Optional


class TranscriptionError(RuntimeError):
    """Base class for all transcription pipeline failures."""


class ProbeFailure(TranscriptionError):
    """Audio metadata could not be read. Fatal to the file job."""


class TranscodeFailure(TranscriptionError):
    """Transcoding failed. Non-fatal while chunking remains possible."""


class ChunkCreationFailure(TranscriptionError):
    """A usable chunk plan or chunk file could not be produced."""


class ProviderRequestFailure(TranscriptionError):
    """The transcription provider request failed or timed out."""

    def __init__(self, message: str, retryable: bool = False, chunk_index: Optional[int] = None):
        super().__init__(message)
        self.retryable = retryable
        self.chunk_index = chunk_index


class TranscriptionCancelled(TranscriptionError):
    """The caller cancelled a running file job."""


class SessionNotFound(TranscriptionError):
    """Unknown or already finalized live session id."""


class DuplicateSession(TranscriptionError):
    """A live session with this id is already active."""


class InvalidConfiguration(TranscriptionError, ValueError):
    """Bad chunking parameters or missing provider configuration."""
