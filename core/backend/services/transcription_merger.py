"""
Transcription Merger
Stitches independently transcribed overlapping chunks into one timeline.
"""

from models.transcript import ChunkTranscriptionResult, Segment

# Jaccard score above which two overlapping segments count as the same speech
DUPLICATE_SIMILARITY = 0.7


class TranscriptionMerger:
    """Utility to merge transcription segments from overlapping chunks."""

    @staticmethod
    def merge_chunks(
        results: list[ChunkTranscriptionResult],
        chunk_duration: float,
        overlap: float,
    ) -> list[Segment]:
        """
        Merge per-chunk results (in chunk index order) into global time.

        Chunk i starts at i * (chunk_duration - overlap). For every chunk after
        the first, segments starting inside the leading overlap are dropped as
        redundant with the previous chunk's tail; the rest are re-offset. The
        concatenation is then deduplicated as a whole.
        """
        if not results:
            return []
        if len(results) == 1:
            return TranscriptionMerger.extract_segments(results[0])

        merged: list[Segment] = []
        step = chunk_duration - overlap

        for i, result in enumerate(results):
            global_offset = i * step
            for seg in TranscriptionMerger.extract_segments(result):
                # Blunt: a segment that really starts inside the overlap is lost too
                if i > 0 and seg.start < overlap:
                    continue
                merged.append(Segment(
                    start=seg.start + global_offset,
                    end=seg.end + global_offset,
                    text=seg.text,
                ))

        return TranscriptionMerger.deduplicate_segments(merged)

    @staticmethod
    def extract_segments(result: ChunkTranscriptionResult) -> list[Segment]:
        """Segments of one result; synthesizes a whole-duration one if none came back."""
        if result.segments:
            return [
                Segment(start=s.start, end=s.end, text=s.text.strip())
                for s in result.segments
            ]

        text = result.text.strip()
        if not text:
            return []
        return [Segment(start=0.0, end=result.duration_seconds, text=text)]

    @staticmethod
    def deduplicate_segments(segments: list[Segment]) -> list[Segment]:
        """
        Drop a segment when it starts before the last kept one ends and their
        texts are near-identical. Output is sorted by start (stable on ties).
        Temporal overlap between dissimilar segments is left alone.
        """
        if not segments:
            return []

        ordered = sorted(segments, key=lambda s: s.start)
        deduplicated = [ordered[0]]

        for current in ordered[1:]:
            last = deduplicated[-1]
            if (
                current.start < last.end
                and TranscriptionMerger.text_similarity(current.text, last.text) > DUPLICATE_SIMILARITY
            ):
                continue
            deduplicated.append(current)

        return deduplicated

    @staticmethod
    def text_similarity(a: str, b: str) -> float:
        """Jaccard similarity of lowercase word sets; 0.0 when both are empty."""
        words_a = set(a.lower().split())
        words_b = set(b.lower().split())

        union = words_a | words_b
        if not union:
            return 0.0
        return len(words_a & words_b) / len(union)

