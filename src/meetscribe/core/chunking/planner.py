from __future__ import annotations

import math
from typing import List, Tuple

from meetscribe.core_types import Chunk
from meetscribe.utils.logger import get_logger

logger = get_logger("meetscribe.chunking")

DEFAULT_CHUNK_SECONDS = 180.0
DEFAULT_OVERLAP_SECONDS = 10.0
DEFAULT_WORKER_CAP = 10


class ChunkPlanner:
    """
    Split [start, end] into at most `worker_cap` windows of ~target seconds.

    Each window's core interval is expanded on its interior sides by the
    overlap so words cut at a boundary are heard twice. The overlap is capped
    at the core size so neighbours never reach past each other, which also
    keeps chunk[i].overlap_prev == chunk[i-1].overlap_next.
    """

    def __init__(
        self,
        target_chunk_seconds: float = DEFAULT_CHUNK_SECONDS,
        overlap_seconds: float = DEFAULT_OVERLAP_SECONDS,
    ) -> None:
        if target_chunk_seconds <= 0:
            raise ValueError("target_chunk_seconds must be > 0")
        if overlap_seconds < 0:
            raise ValueError("overlap_seconds must be >= 0")
        self.target_chunk_seconds = float(target_chunk_seconds)
        self.overlap_seconds = float(overlap_seconds)

    def chunk_count(self, duration: float, worker_cap: int = DEFAULT_WORKER_CAP) -> int:
        if duration <= 0:
            return 1
        return max(1, min(max(1, int(worker_cap)), math.ceil(duration / self.target_chunk_seconds)))

    def plan(self, start_time: float, end_time: float, worker_cap: int = DEFAULT_WORKER_CAP) -> List[Chunk]:
        if end_time <= start_time:
            raise ValueError(f"end_time must be > start_time (got {start_time}..{end_time})")

        duration = end_time - start_time
        n = self.chunk_count(duration, worker_cap)
        base = duration / n
        overlap = min(self.overlap_seconds, base)

        chunks: List[Chunk] = []
        for i in range(n):
            core_start = start_time + i * base
            core_end = end_time if i == n - 1 else start_time + (i + 1) * base

            overlap_prev = overlap if i > 0 else 0.0
            overlap_next = overlap if i < n - 1 else 0.0

            chunks.append(
                Chunk(
                    id=i,
                    start=max(start_time, core_start - overlap_prev),
                    end=min(end_time, core_end + overlap_next),
                    overlap_prev=overlap_prev,
                    overlap_next=overlap_next,
                )
            )

        logger.info(f"Planned {n} chunk(s) over {duration:.1f}s (base={base:.1f}s overlap={overlap:.1f}s)")
        return chunks


def core_bounds(chunk: Chunk) -> Tuple[float, float]:
    """Chunk interval with its overlaps removed."""
    return chunk.start + chunk.overlap_prev, chunk.end - chunk.overlap_next
