"""
Live Session Models
Per-connection live transcription state and the registry that owns it.
"""

import asyncio
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models.transcript import Segment
from services.errors import DuplicateSession, SessionNotFound


class LiveEventType(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"


class LiveEvent(BaseModel):
    """Notification produced while ingesting live audio."""

    model_config = ConfigDict(frozen=True)

    type: LiveEventType
    session_id: str
    text: str
    ts_start: float
    ts_end: float
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_message(self) -> dict:
        return {
            "type": self.type.value,
            "text": self.text,
            "tsStart": self.ts_start,
            "tsEnd": self.ts_end,
        }


class LiveSession(BaseModel):
    """
    Mutable state of one streaming connection.
    Only the live accumulator mutates it, one ingestion at a time.
    """

    session_id: str
    language: str = "auto"

    # Raw PCM not yet forming a full window
    audio_buffer: bytes = b""
    processed_seconds: float = 0.0
    window_count: int = 0

    # Partials waiting for the commit heuristic
    pending_partials: list[str] = Field(default_factory=list)
    pending_start: Optional[float] = None

    committed_segments: list[Segment] = Field(default_factory=list)

    # Monotonic clock readings (seconds)
    started_at: float = Field(default_factory=time.monotonic)
    last_commit_at: float = Field(default_factory=time.monotonic)


class SessionRegistry:
    """
    In-memory session storage owned by the host (server/transport layer).
    Hands out one lock per session so ingestion and finalize are serialized.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, LiveSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def add(self, session: LiveSession) -> LiveSession:
        if session.session_id in self._sessions:
            raise DuplicateSession(f"Session {session.session_id} already exists")
        self._sessions[session.session_id] = session
        self._locks[session.session_id] = asyncio.Lock()
        return session

    def get(self, session_id: str) -> LiveSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"Session not found: {session_id}")
        return session

    def lock(self, session_id: str) -> asyncio.Lock:
        if session_id not in self._locks:
            raise SessionNotFound(f"Session not found: {session_id}")
        return self._locks[session_id]

    def remove(self, session_id: str) -> Optional[LiveSession]:
        self._locks.pop(session_id, None)
        return self._sessions.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    @property
    def active_count(self) -> int:
        return len(self._sessions)
