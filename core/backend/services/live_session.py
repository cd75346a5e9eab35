"""
Live Session Accumulator
Turns a stream of PCM frames into partial and committed (final) segments.

The host owns the SessionRegistry; this class only applies state transitions
to the sessions it is handed, holding the per-session lock while it does.
"""

import re
import time
from typing import Callable, Optional

from models.session import LiveEvent, LiveEventType, LiveSession, SessionRegistry
from models.transcript import MergedTranscript, Segment, TranscribeOptions, TranscriptMeta
from services import caption_renderer
from services.audio_processor import pcm_to_wav
from services.cloud_transcriber import CloudTranscriberBase
from services.errors import InvalidConfiguration, ProviderRequestFailure
from services.session_log import SessionLog

BYTES_PER_SAMPLE = 2  # s16le mono
# Session ids name the log file, so no path separators or dots
SESSION_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,128}")


class LiveTranscriber:
    """
    Commit heuristic: pending partials become one final segment once there are
    `commit_partials` of them, or when more than `commit_idle_ms` passed since
    the last commit. Pending partials are dropped on finalize.
    """

    def __init__(
        self,
        transcriber: CloudTranscriberBase,
        window_bytes: int = 32000,
        sample_rate: int = 16000,
        commit_partials: int = 3,
        commit_idle_ms: int = 700,
        session_log: Optional[SessionLog] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transcriber = transcriber
        self.window_bytes = window_bytes
        self.sample_rate = sample_rate
        self.commit_partials = commit_partials
        self.commit_idle_ms = commit_idle_ms
        self.session_log = session_log
        self.clock = clock

    def start(self, registry: SessionRegistry, session_id: str, language: str = "auto") -> LiveSession:
        """
        Create a session. Ids outside SESSION_ID_PATTERN raise InvalidConfiguration,
        an id that is already active raises DuplicateSession.
        """
        if not isinstance(session_id, str) or not SESSION_ID_PATTERN.fullmatch(session_id):
            raise InvalidConfiguration(f"Invalid sessionId: {session_id!r}")
        now = self.clock()
        session = registry.add(LiveSession(
            session_id=session_id,
            language=language or "auto",
            started_at=now,
            last_commit_at=now,
        ))
        print(f"🔴 Live session started: {session_id} (language: {session.language})")
        return session

    async def ingest(self, registry: SessionRegistry, session_id: str, frame: bytes) -> list[LiveEvent]:
        """Buffer a frame and transcribe every complete window it produces."""
        async with registry.lock(session_id):
            session = registry.get(session_id)
            session.audio_buffer += frame

            events: list[LiveEvent] = []
            while len(session.audio_buffer) >= self.window_bytes:
                window = session.audio_buffer[:self.window_bytes]
                session.audio_buffer = session.audio_buffer[self.window_bytes:]
                events.extend(await self.process_window(session, window))
            return events

    async def process_window(self, session: LiveSession, pcm: bytes) -> list[LiveEvent]:
        window_start = session.processed_seconds
        window_end = window_start + len(pcm) / (self.sample_rate * BYTES_PER_SAMPLE)
        session.processed_seconds = window_end
        session.window_count += 1

        try:
            result = await self.transcriber.transcribe(
                pcm_to_wav(pcm, self.sample_rate),
                f"live_{session.session_id}_{session.window_count}.wav",
                TranscribeOptions.for_request(session.language),
            )
        except ProviderRequestFailure as e:
            # Window is lost, session keeps going
            print(f"❌ Live window {session.window_count} of {session.session_id} skipped: {e}")
            return []

        events = self.apply_transcript(session, result.text, window_start, window_end, self.clock())
        if self.session_log is not None:
            for event in events:
                self.session_log.append_event(event)
        return events

    def apply_transcript(
        self,
        session: LiveSession,
        text: str,
        window_start: float,
        window_end: float,
        now: float,
    ) -> list[LiveEvent]:
        """Record one window's text as a partial and commit if the heuristic fires."""
        text = text.strip()
        if not text:
            return []

        if session.pending_start is None:
            session.pending_start = window_start
        session.pending_partials.append(text)

        events = [LiveEvent(
            type=LiveEventType.PARTIAL,
            session_id=session.session_id,
            text=text,
            ts_start=window_start,
            ts_end=window_end,
        )]

        if self.should_commit(session, now):
            segment = self.commit(session, window_end, now)
            events.append(LiveEvent(
                type=LiveEventType.FINAL,
                session_id=session.session_id,
                text=segment.text,
                ts_start=segment.start,
                ts_end=segment.end,
            ))

        return events

    def should_commit(self, session: LiveSession, now: float) -> bool:
        idle_ms = (now - session.last_commit_at) * 1000
        return len(session.pending_partials) >= self.commit_partials or idle_ms > self.commit_idle_ms

    @staticmethod
    def commit(session: LiveSession, window_end: float, now: float) -> Segment:
        segment = Segment(
            start=session.pending_start if session.pending_start is not None else window_end,
            end=window_end,
            text=" ".join(session.pending_partials),
        )
        session.committed_segments.append(segment)
        session.pending_partials = []
        session.pending_start = None
        session.last_commit_at = now
        return segment

    async def finalize(self, registry: SessionRegistry, session_id: str) -> MergedTranscript:
        """Return committed segments and destroy the session."""
        async with registry.lock(session_id):
            session = registry.get(session_id)
            if session.pending_partials:
                print(f"⚠️ Discarding {len(session.pending_partials)} uncommitted partials of {session_id}")

            segments = list(session.committed_segments)
            result = MergedTranscript(
                segments=segments,
                text=caption_renderer.to_text(segments),
                vtt=caption_renderer.to_vtt(segments),
                meta=TranscriptMeta(
                    duration_seconds=session.processed_seconds,
                    language=session.language,
                    chunked=False,
                    transcoded=False,
                    latency_ms=int((self.clock() - session.started_at) * 1000),
                ),
            )
            registry.remove(session_id)

        if self.session_log is not None:
            self.session_log.append(session_id, {
                "type": "finalized",
                "text": result.text,
                "segmentCount": len(segments),
            })
        print(f"✅ Live session finalized: {session_id} ({len(segments)} segments)")
        return result


def create_live_transcriber(transcriber: CloudTranscriberBase) -> LiveTranscriber:
    """Build a LiveTranscriber from settings."""
    from config import settings

    return LiveTranscriber(
        transcriber=transcriber,
        window_bytes=settings.live_window_bytes,
        sample_rate=settings.live_sample_rate,
        commit_partials=settings.live_commit_partials,
        commit_idle_ms=settings.live_commit_idle_ms,
        session_log=SessionLog(settings.data_dir),
    )
