from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ReconcileConfig:
    # Two segments from different passes align when both their starts and
    # their ends differ by less than this many seconds.
    align_tolerance: float = 0.5

    # Text-overlap search window at chunk seams (characters).
    overlap_min_chars: int = 20
    overlap_max_chars: int = 200

    agreement_bonus: float = 0.1
    default_confidence: float = 0.5
    monotonic_epsilon: float = 1e-6
