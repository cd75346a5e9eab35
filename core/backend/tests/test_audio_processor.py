import struct
from unittest.mock import AsyncMock, patch

import pytest

from models.transcript import ChunkWindow
from services import audio_processor
from services.audio_processor import AudioProcessor, pcm_to_wav
from services.errors import ChunkCreationFailure, ProbeFailure, TranscodeFailure


def test_pcm_to_wav_header():
    pcm = b"\x01\x00" * 100
    wav = pcm_to_wav(pcm, sample_rate=16000)

    assert len(wav) == 44 + len(pcm)
    assert wav[:4] == b"RIFF"
    assert wav[8:16] == b"WAVEfmt "
    channels, sample_rate, byte_rate = struct.unpack("<HII", wav[22:32])
    assert (channels, sample_rate, byte_rate) == (1, 16000, 32000)
    assert wav[36:40] == b"data"
    assert struct.unpack("<I", wav[40:44])[0] == len(pcm)
    assert wav[44:] == pcm

def test_parse_probe():
    metadata = {
        "streams": [
            {"codec_type": "video", "codec_name": "h264"},
            {"codec_type": "audio", "codec_name": "mp3", "sample_rate": "44100", "channels": 2},
        ],
        "format": {"duration": "185.25", "bit_rate": "128000", "format_name": "mp3"},
    }
    info = AudioProcessor.parse_probe(metadata, size_bytes=2_960_000)

    assert info.duration_seconds == 185.25
    assert info.size_bytes == 2_960_000
    assert info.sample_rate == 44100
    assert info.channels == 2
    assert info.codec == "mp3"
    assert info.bitrate == 128000

def test_parse_probe_without_audio_stream():
    with pytest.raises(ProbeFailure):
        AudioProcessor.parse_probe({"streams": [{"codec_type": "video"}], "format": {}}, 10)

def test_output_suffix():
    assert AudioProcessor(codec="libopus").output_suffix == ".ogg"
    assert AudioProcessor(codec="aac").output_suffix == ".m4a"

@pytest.mark.asyncio
async def test_probe_nonzero_exit(tmp_path):
    path = tmp_path / "broken.mp3"
    path.write_bytes(b"junk")

    with patch.object(audio_processor, "_run", AsyncMock(return_value=(1, b"", b"Invalid data"))):
        with pytest.raises(ProbeFailure, match="Invalid data"):
            await AudioProcessor().probe(str(path))

@pytest.mark.asyncio
async def test_transcode_uses_encoding_settings(tmp_path):
    run = AsyncMock(return_value=(0, b"", b""))
    processor = AudioProcessor(bitrate_kbps=32, sample_rate=16000, channels=1, codec="libopus")

    with patch.object(audio_processor, "_run", run):
        await processor.transcode("in.mp3", str(tmp_path / "out.ogg"))

    cmd = run.call_args.args[0]
    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-b:a") + 1] == "32k"
    assert cmd[cmd.index("-ac") + 1] == "1"

@pytest.mark.asyncio
async def test_transcode_failure():
    with patch.object(audio_processor, "_run", AsyncMock(return_value=(1, b"", b"codec missing"))):
        with pytest.raises(TranscodeFailure):
            await AudioProcessor().transcode("in.mp3", "out.ogg")

@pytest.mark.asyncio
async def test_cut_chunk_without_output_fails(tmp_path):
    window = ChunkWindow(index=2, start_offset=179.0, duration=21.0)

    with patch.object(audio_processor, "_run", AsyncMock(return_value=(0, b"", b""))) as run:
        with pytest.raises(ChunkCreationFailure):
            await AudioProcessor().cut_chunk("in.mp3", window, tmp_path)

    cmd = run.call_args.args[0]
    assert cmd[cmd.index("-ss") + 1] == "179.0"
    assert cmd[cmd.index("-t") + 1] == "21.0"
    assert cmd[-1].endswith("chunk_2.ogg")

@pytest.mark.asyncio
async def test_workspace_removed_on_error(tmp_path, monkeypatch):
    monkeypatch.setattr(audio_processor, "TEMP_DIR", tmp_path)

    with pytest.raises(RuntimeError):
        async with AudioProcessor().workspace("job1") as workdir:
            (workdir / "chunk_0.ogg").write_bytes(b"x")
            raise RuntimeError("boom")

    assert not (tmp_path / "job1").exists()

def test_cleanup_ignores_missing_files(tmp_path):
    existing = tmp_path / "a.ogg"
    existing.write_bytes(b"x")

    AudioProcessor.cleanup([str(existing), str(tmp_path / "missing.ogg")])

    assert not existing.exists()
