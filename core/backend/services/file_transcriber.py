"""
File Transcriber
Transcribes one audio file, transcoding or chunking it to fit the provider limit.
"""

import asyncio
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from models.transcript import (
    AudioInfo,
    ChunkTranscriptionResult,
    MergedTranscript,
    Segment,
    TranscribeOptions,
    TranscriptMeta,
)
from services import caption_renderer, chunk_planner
from services.audio_processor import AudioProcessor
from services.cloud_transcriber import CloudTranscriberBase
from services.errors import (
    ChunkCreationFailure,
    InvalidConfiguration,
    ProbeFailure,
    ProviderRequestFailure,
    TranscodeFailure,
    TranscriptionCancelled,
)
from services.transcription_merger import TranscriptionMerger

ProgressCallback = Callable[[int, int], Awaitable[Any]]


class FileTranscriber:
    """
    Two-tier size handling: transcode first (one request), chunk only when the
    transcoded file is still over the limit (N requests).

    A failed chunk request fails the whole job; no empty placeholder is merged.
    """

    def __init__(
        self,
        transcriber: CloudTranscriberBase,
        processor: AudioProcessor,
        size_limit_bytes: int,
        chunk_duration: float = 90.0,
        overlap: float = 0.5,
        max_parallel_chunks: int = 1,
    ):
        chunk_planner.validate(chunk_duration, overlap)
        if max_parallel_chunks < 1:
            raise InvalidConfiguration(f"max_parallel_chunks must be >= 1, got {max_parallel_chunks}")

        self.transcriber = transcriber
        self.processor = processor
        self.size_limit_bytes = size_limit_bytes
        self.chunk_duration = chunk_duration
        self.overlap = overlap
        self.max_parallel_chunks = max_parallel_chunks

    async def transcribe_file(
        self,
        path: str,
        language: str = "auto",
        timestamps: str = "segments",
        cancel_event: Optional[asyncio.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> MergedTranscript:
        started = time.perf_counter()
        options = TranscribeOptions.for_request(language, timestamps)

        print(f"📥 Starting transcription: {Path(path).name}")
        info = await self.processor.probe(path)

        async with self.processor.workspace() as workdir:
            source = path
            transcoded = False

            if chunk_planner.needs_splitting(info, self.size_limit_bytes):
                print(f"📦 File exceeds limit ({info.size_bytes / 1024 / 1024:.1f}MB)")
                transcoded_path = await self._try_transcode(path, workdir)

                if transcoded_path is None:
                    self._check_cancelled(cancel_event)
                    segments, language_found, chunk_count = await self._transcribe_chunked(
                        path, info, workdir, options, cancel_event, progress_callback,
                    )
                    return self._build(
                        segments, started,
                        duration=info.duration_seconds,
                        language=language_found,
                        chunked=True,
                        chunk_count=chunk_count,
                        transcoded=False,
                    )

                source = transcoded_path
                transcoded = True

            self._check_cancelled(cancel_event)
            result = await self.transcriber.transcribe_file(source, options)
            if progress_callback:
                await progress_callback(1, 1)

            return self._build(
                TranscriptionMerger.extract_segments(result), started,
                duration=result.duration_seconds or info.duration_seconds,
                language=result.language,
                chunked=False,
                transcoded=transcoded,
                text=result.text,
            )

    async def _try_transcode(self, path: str, workdir: Path) -> Optional[str]:
        """Returns the transcoded path if it fits, None when chunking is needed."""
        output_path = workdir / f"transcoded{self.processor.output_suffix}"
        try:
            await self.processor.transcode(path, str(output_path))
            transcoded_info = await self.processor.probe(str(output_path))
        except (TranscodeFailure, ProbeFailure) as e:
            print(f"⚠️ Transcode failed, falling back to chunking: {e}")
            return None

        if chunk_planner.needs_splitting(transcoded_info, self.size_limit_bytes):
            print("⚠️ Transcoding insufficient, chunking audio")
            AudioProcessor.cleanup([str(output_path)])
            return None

        print(f"✅ Transcoding successful, size reduced to {transcoded_info.size_bytes / 1024 / 1024:.2f}MB")
        return str(output_path)

    async def _transcribe_chunked(
        self,
        path: str,
        info: AudioInfo,
        workdir: Path,
        options: TranscribeOptions,
        cancel_event: Optional[asyncio.Event],
        progress_callback: Optional[ProgressCallback],
    ) -> tuple[list[Segment], str, int]:
        try:
            plan = chunk_planner.plan(info.duration_seconds, self.chunk_duration, self.overlap)
        except InvalidConfiguration as e:
            raise ChunkCreationFailure(f"Cannot plan chunks: {e}") from e

        chunk_paths = []
        for window in plan.windows:
            self._check_cancelled(cancel_event)
            chunk_paths.append(await self.processor.cut_chunk(path, window, workdir))
        print(f"📦 Created {len(chunk_paths)} chunks")

        results = await self._transcribe_chunks(chunk_paths, options, cancel_event, progress_callback)

        # Index order, never completion order: offsets depend on it
        segments = TranscriptionMerger.merge_chunks(results, self.chunk_duration, self.overlap)
        language = results[0].language if results else "unknown"
        return segments, language, len(chunk_paths)

    async def _transcribe_chunks(
        self,
        chunk_paths: list[str],
        options: TranscribeOptions,
        cancel_event: Optional[asyncio.Event],
        progress_callback: Optional[ProgressCallback],
    ) -> list[ChunkTranscriptionResult]:
        results: list[Optional[ChunkTranscriptionResult]] = [None] * len(chunk_paths)
        semaphore = asyncio.Semaphore(self.max_parallel_chunks)
        completed = 0

        async def run(index: int, chunk_path: str) -> None:
            nonlocal completed
            async with semaphore:
                self._check_cancelled(cancel_event)
                print(f"🎙️ Transcribing chunk {index + 1}/{len(chunk_paths)}...")
                try:
                    results[index] = await self.transcriber.transcribe_file(chunk_path, options)
                except ProviderRequestFailure as e:
                    raise ProviderRequestFailure(
                        f"Chunk {index} failed: {e}",
                        retryable=e.retryable,
                        chunk_index=index,
                    ) from e
                completed += 1
                if progress_callback:
                    await progress_callback(completed, len(chunk_paths))

        tasks = [asyncio.create_task(run(i, p)) for i, p in enumerate(chunk_paths)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return [r for r in results if r is not None]

    @staticmethod
    def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise TranscriptionCancelled("Transcription cancelled by caller")

    @staticmethod
    def _build(
        segments: list[Segment],
        started: float,
        duration: float,
        language: str,
        chunked: bool,
        transcoded: bool,
        chunk_count: Optional[int] = None,
        text: Optional[str] = None,
    ) -> MergedTranscript:
        latency_ms = int((time.perf_counter() - started) * 1000)
        print(f"✅ Transcription complete in {latency_ms}ms ({len(segments)} segments)")
        return MergedTranscript(
            segments=segments,
            text=text if text else caption_renderer.to_text(segments),
            vtt=caption_renderer.to_vtt(segments),
            meta=TranscriptMeta(
                duration_seconds=duration,
                language=language,
                chunked=chunked,
                chunk_count=chunk_count,
                transcoded=transcoded,
                latency_ms=latency_ms,
            ),
        )


def create_file_transcriber(transcriber: CloudTranscriberBase) -> FileTranscriber:
    """Build a FileTranscriber from settings."""
    from config import settings
    from services.audio_processor import get_audio_processor

    return FileTranscriber(
        transcriber=transcriber,
        processor=get_audio_processor(),
        size_limit_bytes=settings.max_file_size_bytes,
        chunk_duration=settings.chunk_duration_seconds,
        overlap=settings.chunk_overlap_seconds,
        max_parallel_chunks=settings.max_parallel_chunks,
    )
