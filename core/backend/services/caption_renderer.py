"""
Caption Renderer
Turns merged segments into plain text, WebVTT and SRT.
"""

import math

from models.transcript import Segment

MAX_WORDS_PER_CUE = 8


def to_text(segments: list[Segment]) -> str:
    """Join segment texts with single spaces."""
    return " ".join(s.text for s in segments).strip()


def split_into_cues(text: str, max_words: int = MAX_WORDS_PER_CUE) -> list[str]:
    """Greedy left-to-right groups of at most max_words words."""
    words = text.split()
    return [" ".join(words[i:i + max_words]) for i in range(0, len(words), max_words)]


def format_timestamp(seconds: float, separator: str = ".") -> str:
    """
    Format seconds as HH:MM:SS.mmm.
    Milliseconds are truncated, not rounded; sub-microsecond float noise is
    absorbed first so 59.999 stays 59.999 instead of becoming 59.998.
    """
    total_ms = max(0, math.floor(round(seconds * 1000, 3)))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}{separator}{millis:03d}"


def to_vtt(segments: list[Segment]) -> str:
    """
    WebVTT with one block per cue, identified "<segment>.<cue>" (1-based).
    Each segment's span is divided evenly between its cues.
    """
    lines = ["WEBVTT", ""]

    for i, segment in enumerate(segments):
        cues = split_into_cues(segment.text)
        if not cues:
            continue

        step = (segment.end - segment.start) / len(cues)
        for j, cue_text in enumerate(cues):
            cue_start = segment.start + j * step
            cue_end = min(segment.start + (j + 1) * step, segment.end)

            lines.append(f"{i + 1}.{j + 1}")
            lines.append(f"{format_timestamp(cue_start)} --> {format_timestamp(cue_end)}")
            lines.append(cue_text)
            lines.append("")

    return "\n".join(lines) + "\n"


def to_srt(segments: list[Segment]) -> str:
    """SRT with one numbered cue per segment (HH:MM:SS,mmm)."""
    srt_content = []
    for i, seg in enumerate(segments, 1):
        srt_content.append(f"{i}")
        srt_content.append(f"{format_timestamp(seg.start, ',')} --> {format_timestamp(seg.end, ',')}")
        srt_content.append(seg.text)
        srt_content.append("")

    return "\n".join(srt_content)
