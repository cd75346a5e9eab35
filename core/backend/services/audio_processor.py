"""
Audio Processor Service
Probes, transcodes and cuts audio with FFmpeg; owns job temp directories.
"""

import asyncio
import json
import os
import shutil
import struct
import tempfile
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from models.transcript import AudioInfo, ChunkWindow
from services.errors import ChunkCreationFailure, ProbeFailure, TranscodeFailure


# Check FFmpeg availability
def _check_ffmpeg() -> bool:
    """Check if FFmpeg and FFprobe are available in PATH."""
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


FFMPEG_AVAILABLE = _check_ffmpeg()

# Temp directory for processing
TEMP_DIR = Path(tempfile.gettempdir()) / "live_transcriber"


async def _run(cmd: list[str]) -> tuple[int, bytes, bytes]:
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE
    )
    stdout, stderr = await process.communicate()
    return process.returncode, stdout, stderr


def pcm_to_wav(pcm_data: bytes, sample_rate: int = 16000, num_channels: int = 1) -> bytes:
    """Wrap PCM 16-bit little-endian data in a WAV header."""
    bits_per_sample = 16
    byte_rate = sample_rate * num_channels * bits_per_sample // 8
    block_align = num_channels * bits_per_sample // 8
    data_size = len(pcm_data)

    header = struct.pack(
        '<4sI4s4sIHHIIHH4sI',
        b'RIFF',
        36 + data_size,
        b'WAVE',
        b'fmt ',
        16,
        1,
        num_channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        b'data',
        data_size,
    )

    return header + pcm_data


class AudioProcessor:
    """Service for inspecting and reshaping audio files."""

    def __init__(
        self,
        bitrate_kbps: int = 48,
        sample_rate: int = 16000,
        channels: int = 1,
        codec: str = "libopus",
    ):
        self.bitrate_kbps = bitrate_kbps
        self.sample_rate = sample_rate
        self.channels = channels
        self.codec = codec
        if not FFMPEG_AVAILABLE:
            print("⚠️ FFmpeg not found in PATH. Large files cannot be transcoded or chunked.")

    @property
    def output_suffix(self) -> str:
        return ".ogg" if self.codec == "libopus" else ".m4a"

    async def probe(self, path: str) -> AudioInfo:
        """Read duration, size and stream details with ffprobe."""
        cmd = [
            "ffprobe", "-v", "quiet",
            "-print_format", "json",
            "-show_format", "-show_streams",
            str(path)
        ]

        try:
            returncode, stdout, stderr = await _run(cmd)
        except OSError as e:
            raise ProbeFailure(f"Failed to probe audio: {e}") from e

        if returncode != 0:
            error_msg = stderr.decode(errors="replace") if stderr else "Unknown ffprobe error"
            raise ProbeFailure(f"Failed to probe audio: {error_msg}")

        try:
            metadata = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise ProbeFailure(f"Unreadable ffprobe output: {e}") from e

        return self.parse_probe(metadata, os.path.getsize(path))

    @staticmethod
    def parse_probe(metadata: dict, size_bytes: int) -> AudioInfo:
        streams = metadata.get("streams", [])
        audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)
        if audio_stream is None:
            raise ProbeFailure("No audio stream found")

        fmt = metadata.get("format", {})
        return AudioInfo(
            duration_seconds=float(fmt.get("duration") or 0.0),
            size_bytes=size_bytes,
            sample_rate=int(audio_stream.get("sample_rate") or 0),
            channels=int(audio_stream.get("channels") or 0),
            codec=audio_stream.get("codec_name") or "unknown",
            bitrate=int(fmt.get("bit_rate") or 0),
            format_name=fmt.get("format_name") or "unknown",
        )

    def _encode_args(self) -> list[str]:
        return [
            "-vn",
            "-acodec", self.codec,
            "-b:a", f"{self.bitrate_kbps}k",
            "-ar", str(self.sample_rate),
            "-ac", str(self.channels),
        ]

    async def transcode(self, input_path: str, output_path: str) -> str:
        """Re-encode to mono, low sample rate, low bitrate (cheaper than chunking)."""
        cmd = ["ffmpeg", "-y", "-i", str(input_path), *self._encode_args(), str(output_path)]

        print(f"🔄 Transcoding {Path(input_path).name} ({self.codec}, {self.bitrate_kbps}kbps)...")
        try:
            returncode, _, stderr = await _run(cmd)
        except OSError as e:
            raise TranscodeFailure(f"FFmpeg transcode failed: {e}") from e

        if returncode != 0:
            error_msg = stderr.decode(errors="replace") if stderr else "Unknown FFmpeg error"
            raise TranscodeFailure(f"FFmpeg transcode failed: {error_msg}")

        return str(output_path)

    async def cut_chunk(self, input_path: str, window: ChunkWindow, output_dir: Path) -> str:
        """Extract one window of the input as a standalone encoded file."""
        output_path = output_dir / f"chunk_{window.index}{self.output_suffix}"
        cmd = [
            "ffmpeg", "-y",
            "-ss", str(window.start_offset),
            "-t", str(window.duration),
            "-i", str(input_path),
            *self._encode_args(),
            str(output_path)
        ]

        try:
            returncode, _, stderr = await _run(cmd)
        except OSError as e:
            raise ChunkCreationFailure(f"Chunk {window.index} failed: {e}") from e

        if returncode != 0 or not output_path.exists():
            error_msg = stderr.decode(errors="replace") if stderr else "Unknown FFmpeg error"
            raise ChunkCreationFailure(f"Chunk {window.index} failed: {error_msg}")

        print(f"✂️ Chunk {window.index} created ({window.start_offset:.1f}s +{window.duration:.1f}s)")
        return str(output_path)

    @asynccontextmanager
    async def workspace(self, job_id: Optional[str] = None) -> AsyncIterator[Path]:
        """Per-job temp directory, removed on success, failure and cancellation."""
        job_dir = TEMP_DIR / (job_id or uuid.uuid4().hex)
        job_dir.mkdir(parents=True, exist_ok=True)
        try:
            yield job_dir
        finally:
            self.cleanup_dir(job_dir)

    @staticmethod
    def cleanup_dir(job_dir: Path) -> None:
        if job_dir.exists():
            shutil.rmtree(job_dir, ignore_errors=True)

    @staticmethod
    def cleanup(paths: list[str]) -> None:
        """Remove temp files, reporting (not raising) on failure."""
        for path in paths:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                print(f"⚠️ Failed to cleanup {path}: {e}")


# Singleton
_processor: AudioProcessor | None = None


def get_audio_processor() -> AudioProcessor:
    """Get audio processor singleton configured from settings."""
    global _processor
    if _processor is None:
        from config import settings
        _processor = AudioProcessor(
            bitrate_kbps=settings.transcode_bitrate_kbps,
            sample_rate=settings.transcode_sample_rate,
            channels=settings.transcode_channels,
            codec=settings.transcode_codec,
        )
    return _processor
