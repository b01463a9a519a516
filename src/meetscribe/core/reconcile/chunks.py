from __future__ import annotations

from typing import Dict, List, Sequence

from meetscribe.core.reconcile.config import ReconcileConfig
from meetscribe.core.reconcile.text import (
    collapse_whitespace,
    enforce_monotonic,
    find_text_overlap,
    join_texts,
    renumber,
)
from meetscribe.core_types import Chunk, PassResult, Segment, Transcript
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.reconcile")


def drop_overlapping(new: Sequence[Segment], merged: Sequence[Segment], overlap_prev: float) -> List[Segment]:
    """
    Keep only segments that start after (last merged end - overlap_prev).
    Segments inside the shared window were already heard by the previous chunk.
    """
    if overlap_prev <= 0 or not merged:
        return list(new)
    threshold = merged[-1].end - overlap_prev
    return [s for s in new if s.start > threshold]


def stitch_chunks(
    results: Sequence[PassResult],
    chunks: Sequence[Chunk],
    cfg: ReconcileConfig = ReconcileConfig(),
) -> Transcript:
    """
    Stitch per-chunk results (any completion order) into one transcript.

    Text seams: the longest repeated tail/head run is removed; when none is
    found the texts are concatenated as-is.
    """
    by_id: Dict[int, Chunk] = {c.id: c for c in chunks}
    ordered = sorted(results, key=lambda r: r.chunk_id if r.chunk_id is not None else 0)

    merged: List[Segment] = []
    parts: List[str] = []
    dropped = 0

    for i, res in enumerate(ordered):
        chunk = by_id.get(res.chunk_id if res.chunk_id is not None else i)
        overlap_prev = chunk.overlap_prev if chunk is not None else 0.0
        text = collapse_whitespace(res.text)

        if i == 0:
            merged.extend(res.segments)
            parts.append(text)
            continue

        kept = drop_overlapping(res.segments, merged, overlap_prev)
        dropped += len(res.segments) - len(kept)
        merged.extend(kept)

        seam = find_text_overlap(
            join_texts(parts),
            text,
            min_chars=cfg.overlap_min_chars,
            max_chars=cfg.overlap_max_chars,
        )
        parts.append(text[len(seam):] if seam else text)

    segs = renumber(enforce_monotonic(merged, epsilon=cfg.monotonic_epsilon))
    logger.info(f"Stitched {len(ordered)} chunk(s): {len(segs)} segments ({dropped} overlap duplicate(s) dropped)")

    language = next((r.language for r in ordered if r.language), None) or "unknown"
    return Transcript(text=join_texts(parts), segments=segs, language=language)
