from __future__ import annotations

from collections import Counter
from typing import List, Optional, Sequence, Tuple

from meetscribe.core.reconcile.config import ReconcileConfig
from meetscribe.core.reconcile.text import (
    collapse_whitespace,
    enforce_monotonic,
    join_texts,
    normalize_text,
    renumber,
)
from meetscribe.core_types import PassResult, Segment, Transcript, clamp01
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.reconcile")

# (pass index, aligned segment)
Candidate = Tuple[int, Segment]


def reference_index(passes: Sequence[PassResult]) -> int:
    """Highest-confidence pass; ties go to the earliest pass."""
    best = 0
    for i, p in enumerate(passes):
        if p.confidence > passes[best].confidence:
            best = i
    return best


def find_aligned(target: Segment, segments: Sequence[Segment], tolerance: float) -> Optional[Segment]:
    for seg in segments:
        if abs(seg.start - target.start) < tolerance and abs(seg.end - target.end) < tolerance:
            return seg
    return None


def vote(variants: Sequence[Tuple[int, str]], ref_idx: int) -> str:
    """
    Majority vote over (pass index, text) variants, compared normalized.

    Ties: the reference pass's variant wins if it is among the tied ones,
    otherwise the variant seen first in pass order. The returned string
    keeps the casing of the reference (or of the first pass that produced
    the winning variant).
    """
    if not variants:
        return ""

    counts = Counter(normalize_text(text) for _, text in variants)
    top = max(counts.values())
    tied = {k for k, v in counts.items() if v == top}

    ordered = sorted(variants, key=lambda v: v[0])
    ref = next((text for idx, text in ordered if idx == ref_idx), None)

    if ref is not None and normalize_text(ref) in tied:
        return ref.strip()

    for _, text in ordered:
        if normalize_text(text) in tied:
            return text.strip()
    return ordered[0][1].strip()


def select_text(candidates: Sequence[Candidate], ref_idx: int) -> str:
    return vote([(idx, seg.text) for idx, seg in candidates], ref_idx)


def merged_confidence(candidates: Sequence[Candidate], cfg: ReconcileConfig) -> float:
    confs = [seg.confidence for _, seg in candidates if seg.confidence is not None]
    base = sum(confs) / len(confs) if confs else cfg.default_confidence
    if len(candidates) > 1:
        base += cfg.agreement_bonus
    return clamp01(base)


def merge_passes(passes: Sequence[PassResult], cfg: ReconcileConfig = ReconcileConfig()) -> Transcript:
    """
    Reconcile several passes over the same audio into one transcript.

    The reference (highest-confidence) pass fixes the segmentation; every
    reference segment is rebuilt from the segments of all passes that
    align with it in time. A reference without segments (plain-text
    responses) falls back to a vote over the whole pass texts.
    """
    if not passes:
        return Transcript(text="", segments=[])

    if len(passes) == 1:
        only = passes[0]
        segs = renumber(enforce_monotonic(list(only.segments), epsilon=cfg.monotonic_epsilon))
        return Transcript(
            text=join_texts(s.text for s in segs) or only.text.strip(),
            segments=segs,
            language=only.language or "unknown",
        )

    ref_idx = reference_index(passes)
    reference = passes[ref_idx]

    if not reference.segments:
        # Plain-text responses: no timing to align on, vote on whole texts.
        text = vote([(i, p.text) for i, p in enumerate(passes) if p.text.strip()], ref_idx)
        logger.info(f"Merged {len(passes)} passes by whole-text vote (reference pass {ref_idx} has no segments)")
        return Transcript(text=collapse_whitespace(text), segments=[], language=reference.language or "unknown")

    merged: List[Segment] = []
    disagreements = 0
    for ref_seg in reference.segments:
        candidates: List[Candidate] = []
        for pi, p in enumerate(passes):
            seg = ref_seg if pi == ref_idx else find_aligned(ref_seg, p.segments, cfg.align_tolerance)
            if seg is not None:
                candidates.append((pi, seg))

        text = select_text(candidates, ref_idx)
        if len({normalize_text(s.text) for _, s in candidates}) > 1:
            disagreements += 1

        merged.append(
            Segment(
                id=len(merged),
                start=ref_seg.start,
                end=ref_seg.end,
                text=text,
                speaker=ref_seg.speaker,
                confidence=merged_confidence(candidates, cfg),
            )
        )

    segs = renumber(enforce_monotonic(merged, epsilon=cfg.monotonic_epsilon))
    logger.info(
        f"Merged {len(passes)} passes on reference pass {ref_idx} "
        f"(temp={reference.temperature}): {len(segs)} segments, {disagreements} disagreement(s)"
    )
    return Transcript(
        text=join_texts(s.text for s in segs),
        segments=segs,
        language=reference.language or "unknown",
    )
