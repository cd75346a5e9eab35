import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from models.transcript import AudioInfo, ChunkTranscriptionResult, Segment
from services import audio_processor
from services.audio_processor import AudioProcessor
from services.errors import (
    ChunkCreationFailure,
    InvalidConfiguration,
    ProbeFailure,
    ProviderRequestFailure,
    TranscodeFailure,
    TranscriptionCancelled,
)
from services.file_transcriber import FileTranscriber

LIMIT = 1000


class FakeProcessor(AudioProcessor):
    """AudioProcessor with ffmpeg replaced by canned probe results."""

    def __init__(self, infos: dict[str, AudioInfo], transcode_error: Exception | None = None):
        super().__init__()
        self.infos = infos
        self.transcode_error = transcode_error
        self.cut_windows = []

    async def probe(self, path):
        name = Path(path).name
        if name not in self.infos:
            raise ProbeFailure(f"cannot probe {name}")
        return self.infos[name]

    async def transcode(self, input_path, output_path):
        if self.transcode_error is not None:
            raise self.transcode_error
        Path(output_path).write_bytes(b"transcoded")
        return str(output_path)

    async def cut_chunk(self, input_path, window, output_dir):
        self.cut_windows.append(window)
        chunk_path = output_dir / f"chunk_{window.index}.ogg"
        chunk_path.write_bytes(b"chunk")
        return str(chunk_path)


def _info(size_bytes: int, duration: float = 200.0) -> AudioInfo:
    return AudioInfo(duration_seconds=duration, size_bytes=size_bytes)


def _result(text: str, start: float = 1.0, end: float = 2.0, language: str = "en") -> ChunkTranscriptionResult:
    return ChunkTranscriptionResult(
        text=text,
        language=language,
        duration_seconds=90.0,
        segments=[Segment(start=start, end=end, text=text)],
    )


def _transcriber(responses: dict[str, object]):
    """Responses keyed by file name; exceptions are raised."""
    async def transcribe_file(path, options=None):
        response = responses[Path(path).name]
        if isinstance(response, Exception):
            raise response
        return response

    transcriber = MagicMock()
    transcriber.transcribe_file = AsyncMock(side_effect=transcribe_file)
    return transcriber


@pytest.fixture(autouse=True)
def temp_root(tmp_path, monkeypatch):
    root = tmp_path / "work"
    monkeypatch.setattr(audio_processor, "TEMP_DIR", root)
    return root


@pytest.fixture
def input_path(tmp_path):
    path = tmp_path / "input.mp3"
    path.write_bytes(b"audio")
    return str(path)


@pytest.mark.asyncio
async def test_small_file_single_request(input_path):
    transcriber = _transcriber({"input.mp3": _result("hello there")})
    service = FileTranscriber(transcriber, FakeProcessor({"input.mp3": _info(100)}), LIMIT)

    result = await service.transcribe_file(input_path)

    assert result.text == "hello there"
    assert result.meta.chunked is False
    assert result.meta.transcoded is False
    assert result.meta.language == "en"
    assert "00:00:01.000 --> 00:00:02.000\nhello there" in result.vtt
    transcriber.transcribe_file.assert_awaited_once()

@pytest.mark.asyncio
async def test_language_and_timestamps_reach_provider(input_path):
    transcriber = _transcriber({"input.mp3": _result("hola")})
    service = FileTranscriber(transcriber, FakeProcessor({"input.mp3": _info(100)}), LIMIT)

    await service.transcribe_file(input_path, language="es", timestamps="word")

    options = transcriber.transcribe_file.call_args.args[1]
    assert options.language == "es"
    assert options.timestamp_granularities == ["word", "segment"]

@pytest.mark.asyncio
async def test_large_file_transcoded_when_it_fits(input_path):
    transcriber = _transcriber({"transcoded.ogg": _result("smaller now")})
    processor = FakeProcessor({"input.mp3": _info(5000), "transcoded.ogg": _info(500)})
    service = FileTranscriber(transcriber, processor, LIMIT)

    result = await service.transcribe_file(input_path)

    assert result.text == "smaller now"
    assert result.meta.transcoded is True
    assert result.meta.chunked is False
    assert processor.cut_windows == []

@pytest.mark.asyncio
async def test_chunks_when_transcode_insufficient(input_path):
    transcriber = _transcriber({
        "chunk_0.ogg": _result("zero"),
        "chunk_1.ogg": _result("one"),
        "chunk_2.ogg": _result("two"),
    })
    processor = FakeProcessor({"input.mp3": _info(5000), "transcoded.ogg": _info(4000)})
    service = FileTranscriber(transcriber, processor, LIMIT, chunk_duration=90, overlap=0.5)

    result = await service.transcribe_file(input_path)

    assert result.meta.chunked is True
    assert result.meta.transcoded is False
    assert result.meta.chunk_count == 3
    assert result.meta.duration_seconds == 200.0
    assert [s.text for s in result.segments] == ["zero", "one", "two"]
    assert [s.start for s in result.segments] == pytest.approx([1.0, 90.5, 180.0])
    assert result.text == "zero one two"

@pytest.mark.asyncio
async def test_chunks_when_transcode_fails(input_path):
    transcriber = _transcriber({"chunk_0.ogg": _result("only")})
    processor = FakeProcessor(
        {"input.mp3": _info(5000, duration=60.0)},
        transcode_error=TranscodeFailure("no encoder"),
    )
    service = FileTranscriber(transcriber, processor, LIMIT)

    result = await service.transcribe_file(input_path)

    assert result.meta.chunked is True
    assert result.meta.chunk_count == 1
    assert result.text == "only"

@pytest.mark.asyncio
async def test_chunk_failure_fails_job_and_cleans_up(input_path, temp_root):
    transcriber = _transcriber({
        "chunk_0.ogg": _result("zero"),
        "chunk_1.ogg": ProviderRequestFailure("rate limited", retryable=True),
        "chunk_2.ogg": _result("two"),
    })
    processor = FakeProcessor({"input.mp3": _info(5000)}, transcode_error=TranscodeFailure("boom"))
    service = FileTranscriber(transcriber, processor, LIMIT)

    with pytest.raises(ProviderRequestFailure) as exc_info:
        await service.transcribe_file(input_path)

    assert exc_info.value.chunk_index == 1
    assert exc_info.value.retryable is True
    assert list(temp_root.iterdir()) == []

@pytest.mark.asyncio
async def test_parallel_results_merge_in_index_order(input_path):
    async def transcribe_file(path, options=None):
        index = int(Path(path).stem.split("_")[1])
        # Earlier chunks finish last
        await asyncio.sleep(0.01 * (3 - index))
        return _result(f"part {index}")

    transcriber = MagicMock()
    transcriber.transcribe_file = AsyncMock(side_effect=transcribe_file)
    processor = FakeProcessor({"input.mp3": _info(5000)}, transcode_error=TranscodeFailure("boom"))
    service = FileTranscriber(transcriber, processor, LIMIT, max_parallel_chunks=3)
    progress = AsyncMock()

    result = await service.transcribe_file(input_path, progress_callback=progress)

    assert [s.text for s in result.segments] == ["part 0", "part 1", "part 2"]
    assert progress.await_count == 3
    progress.assert_awaited_with(3, 3)

@pytest.mark.asyncio
async def test_cancelled_before_request(input_path, temp_root):
    transcriber = _transcriber({"input.mp3": _result("never")})
    service = FileTranscriber(transcriber, FakeProcessor({"input.mp3": _info(100)}), LIMIT)
    cancel_event = asyncio.Event()
    cancel_event.set()

    with pytest.raises(TranscriptionCancelled):
        await service.transcribe_file(input_path, cancel_event=cancel_event)

    transcriber.transcribe_file.assert_not_called()
    assert list(temp_root.iterdir()) == []

@pytest.mark.asyncio
async def test_probe_failure_propagates(input_path):
    transcriber = _transcriber({})
    service = FileTranscriber(transcriber, FakeProcessor({}), LIMIT)

    with pytest.raises(ProbeFailure):
        await service.transcribe_file(input_path)

@pytest.mark.asyncio
async def test_zero_duration_cannot_be_chunked(input_path):
    processor = FakeProcessor({"input.mp3": _info(5000, duration=0.0)}, transcode_error=TranscodeFailure("boom"))
    service = FileTranscriber(_transcriber({}), processor, LIMIT)

    with pytest.raises(ChunkCreationFailure):
        await service.transcribe_file(input_path)

@pytest.mark.parametrize("kwargs", [
    {"chunk_duration": 10, "overlap": 10},
    {"chunk_duration": 0, "overlap": 0},
    {"max_parallel_chunks": 0},
])
def test_invalid_configuration_rejected(kwargs):
    with pytest.raises(InvalidConfiguration):
        FileTranscriber(MagicMock(), FakeProcessor({}), LIMIT, **kwargs)
