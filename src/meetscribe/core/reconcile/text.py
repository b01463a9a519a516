from __future__ import annotations

import re
import unicodedata
from typing import Iterable, List, Optional

from meetscribe.core_types import Segment

_SPACE_RE = re.compile(r"\s+")


def normalize_text(s: str) -> str:
    """
    Comparison key for text variants:
    - NFKC (full/half width, compatibility forms)
    - lowercase
    - collapse and trim whitespace
    """
    s = unicodedata.normalize("NFKC", s or "")
    return _SPACE_RE.sub(" ", s).strip().lower()


def collapse_whitespace(s: str) -> str:
    return _SPACE_RE.sub(" ", s or "").strip()


def join_texts(parts: Iterable[str]) -> str:
    return collapse_whitespace(" ".join(p for p in parts if p))


def find_text_overlap(merged: str, new: str, *, min_chars: int = 20, max_chars: int = 200) -> Optional[str]:
    """
    Longest tail of `merged` (between min_chars and max_chars long) that
    `new` starts with. None when nothing that long repeats.
    """
    if not merged or not new:
        return None
    upper = min(max_chars, len(merged), len(new))
    for n in range(upper, min_chars - 1, -1):
        tail = merged[-n:]
        if new.startswith(tail):
            return tail
    return None


def enforce_monotonic(segments: List[Segment], *, epsilon: float = 1e-6) -> List[Segment]:
    """
    Sort by start and clamp residual overlaps so every segment starts no
    earlier than its predecessor ends. Blank segments are dropped; a fully
    covered segment with text collapses to zero length at the boundary.
    """
    ordered = sorted(segments, key=lambda s: (s.start, s.end, s.id))
    out: List[Segment] = []
    prev_end: Optional[float] = None
    for seg in ordered:
        if not (seg.text or "").strip():
            continue
        start, end = float(seg.start), float(seg.end)
        if prev_end is not None and start < prev_end - epsilon:
            start = prev_end
        if end < start:
            end = start
        out.append(seg.model_copy(update={"start": start, "end": end}))
        prev_end = end if prev_end is None else max(prev_end, end)
    return out


def renumber(segments: List[Segment]) -> List[Segment]:
    return [seg.model_copy(update={"id": i}) for i, seg in enumerate(segments)]
