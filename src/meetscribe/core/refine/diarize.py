from __future__ import annotations

from typing import List, Sequence

from meetscribe.core_types import Segment

SPEAKER_CHANGE_GAP = 2.0


def assign_speakers(segments: Sequence[Segment], speaker_count: int, *, gap: float = SPEAKER_CHANGE_GAP) -> List[Segment]:
    """
    Pause heuristic, not real diarization: the speaker label rotates through
    "Speaker 1".."Speaker N" whenever the silence before a segment exceeds `gap`.
    """
    if speaker_count <= 1 or not segments:
        return list(segments)

    current = 0
    out: List[Segment] = []
    for i, seg in enumerate(segments):
        if i > 0 and seg.start - segments[i - 1].end > gap:
            current = (current + 1) % speaker_count
        out.append(seg.model_copy(update={"speaker": f"Speaker {current + 1}"}))
    return out
