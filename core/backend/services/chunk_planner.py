"""
Chunk Planner
Decides whether audio must be split and computes overlapping windows.
"""

from models.transcript import AudioInfo, ChunkPlan, ChunkWindow
from services.errors import InvalidConfiguration


def needs_splitting(info: AudioInfo, size_limit_bytes: int) -> bool:
    """True iff the file is larger than the provider size limit."""
    return info.size_bytes > size_limit_bytes


def validate(chunk_duration: float, overlap: float) -> None:
    """Reject parameters that would never advance the window start."""
    if chunk_duration <= 0:
        raise InvalidConfiguration(f"chunk_duration must be positive, got {chunk_duration}")
    if overlap < 0:
        raise InvalidConfiguration(f"overlap must not be negative, got {overlap}")
    if overlap >= chunk_duration:
        raise InvalidConfiguration(
            f"overlap ({overlap}s) must be smaller than chunk_duration ({chunk_duration}s)"
        )


def plan(total_duration: float, chunk_duration: float, overlap: float) -> ChunkPlan:
    """
    Windows start at 0, step, 2*step, ... with step = chunk_duration - overlap,
    each lasting chunk_duration, the last one truncated to total_duration.
    """
    validate(chunk_duration, overlap)
    if total_duration <= 0:
        raise InvalidConfiguration(f"total_duration must be positive, got {total_duration}")

    step = chunk_duration - overlap
    windows = []
    index = 0
    # Multiply, never accumulate
    start = 0.0
    while start < total_duration:
        windows.append(ChunkWindow(
            index=index,
            start_offset=start,
            duration=min(chunk_duration, total_duration - start),
        ))
        index += 1
        start = index * step

    return ChunkPlan(
        total_duration=total_duration,
        chunk_duration=chunk_duration,
        overlap=overlap,
        windows=tuple(windows),
    )
